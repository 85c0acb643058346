"""
Report assembly: rows in resolution order plus running savings totals.
Rendering (tables, dashboards) is left to consumers of `build()`.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from analysis.models import RecommendationRow, ResourceValue, ValueState
from normalize.quantity import format_bytes, format_cpu, format_memory


def _display(value: ResourceValue, fmt) -> str:
    if value.state is ValueState.ABSENT:
        return "absent"
    if value.state is ValueState.UNDETERMINED:
        return "could not determine"
    return fmt(value.amount)


def _has_gap(row: RecommendationRow) -> bool:
    """True when any recommendation could not be derived from metrics"""
    recommended = (
        row.recommended_request_cpu, row.recommended_limit_cpu,
        row.recommended_request_memory, row.recommended_limit_memory,
    )
    return any(v.state is ValueState.UNDETERMINED for v in recommended)


def row_to_dict(row: RecommendationRow) -> Dict[str, Any]:
    return {
        "namespace": row.namespace,
        "workload": row.workload,
        "container": row.container,
        "recommended": {
            "request_cpu": row.recommended_request_cpu.to_dict(),
            "limit_cpu": row.recommended_limit_cpu.to_dict(),
            "request_memory": row.recommended_request_memory.to_dict(),
            "limit_memory": row.recommended_limit_memory.to_dict(),
        },
        "current": {
            "request_cpu": row.current_request_cpu.to_dict(),
            "limit_cpu": row.current_limit_cpu.to_dict(),
            "request_memory": row.current_request_memory.to_dict(),
            "limit_memory": row.current_limit_memory.to_dict(),
        },
        # "recommended (current)", the way operators read a resources block
        "display": {
            "request_cpu": f"{_display(row.recommended_request_cpu, format_cpu)} ({_display(row.current_request_cpu, format_cpu)})",
            "request_memory": f"{_display(row.recommended_request_memory, format_memory)} ({_display(row.current_request_memory, format_memory)})",
            "limit_cpu": f"{_display(row.recommended_limit_cpu, format_cpu)} ({_display(row.current_limit_cpu, format_cpu)})",
            "limit_memory": f"{_display(row.recommended_limit_memory, format_memory)} ({_display(row.current_limit_memory, format_memory)})",
        },
        "cpu_delta_cores": row.cpu_delta,
        "memory_delta_bytes": row.memory_delta,
        "observations": list(row.observations),
    }


def savings_text(cpu_cores: float, memory_bytes: float) -> str:
    # float sums leave residue like 1e-17
    cpu_cores = round(cpu_cores, 6)
    memory_bytes = round(memory_bytes)
    parts = []
    if cpu_cores > 0:
        parts.append(f"Save {cpu_cores:.2f} CPU cores")
    elif cpu_cores < 0:
        parts.append(f"Need {abs(cpu_cores):.2f} more CPU cores")

    if memory_bytes > 0:
        parts.append(f"Save {format_bytes(memory_bytes)} memory")
    elif memory_bytes < 0:
        parts.append(f"Need {format_bytes(abs(memory_bytes))} more memory")

    return "; ".join(parts) if parts else "No significant changes"


class ReportBuilder:
    """Accumulates rows and totals across workloads, in the order they are added"""

    def __init__(self):
        self._rows: List[RecommendationRow] = []
        self.total_cpu_delta = 0.0
        self.total_memory_delta = 0.0
        self.workload_count = 0

    def add(self, rows: List[RecommendationRow], cpu_delta: float, memory_delta: float) -> None:
        self._rows.extend(rows)
        self.total_cpu_delta += cpu_delta
        self.total_memory_delta += memory_delta
        self.workload_count += 1

    @property
    def rows(self) -> Tuple[RecommendationRow, ...]:
        return tuple(self._rows)

    @property
    def totals(self) -> Tuple[float, float]:
        return self.total_cpu_delta, self.total_memory_delta

    def build(self, namespaces: List[str], window: str, quantile: float, limit_margin: float,
              generated_at: Optional[datetime] = None) -> Dict[str, Any]:
        generated_at = generated_at or datetime.now(timezone.utc)
        undetermined = sum(1 for r in self._rows if _has_gap(r))
        return {
            "generated_at": generated_at.isoformat(),
            "analysis_scope": {
                "namespaces": list(namespaces),
                "window": window,
                "request_quantile": quantile,
                "limit_margin": limit_margin,
            },
            "rows": [row_to_dict(r) for r in self._rows],
            "summary": {
                "workloads": self.workload_count,
                "containers": len(self._rows),
                "containers_with_gaps": undetermined,
                "total_cpu_delta_cores": round(self.total_cpu_delta, 4),
                "total_memory_delta_bytes": round(self.total_memory_delta),
                "text": savings_text(self.total_cpu_delta, self.total_memory_delta),
            },
        }
