"""Quantity conversion and rounding.

Internally CPU is carried in cores and memory in bytes. Kubernetes quantity
strings only appear at the edges: parsing container specs and presenting rows.
"""
from decimal import Decimal, ROUND_CEILING
from typing import Optional, Union

from kubernetes.utils import parse_quantity

MIB = 1024 * 1024
GIB = 1024 * MIB

CPU_STEP = Decimal("0.1")
MEMORY_STEP_BYTES = 100 * MIB

Number = Union[int, float, Decimal]


def parse_cpu(value: Optional[Union[str, Number]]) -> Optional[float]:
    """'250m' -> 0.25 cores. None stays None (resource not defined)."""
    if value is None:
        return None
    return float(parse_quantity(value))


def parse_memory(value: Optional[Union[str, Number]]) -> Optional[float]:
    """'256Mi' -> 268435456.0 bytes. None stays None (resource not defined)."""
    if value is None:
        return None
    return float(parse_quantity(value))


def _exact(value: Number) -> Decimal:
    # repr() is the shortest string that round-trips, so the Decimal
    # never exceeds the float it came from
    if isinstance(value, Decimal):
        return value
    return Decimal(repr(float(value)))


def round_cpu_up(cores: Number) -> float:
    """Round up to the next 0.1 core. round_cpu_up(x) >= x, and it is idempotent."""
    return float(_exact(cores).quantize(CPU_STEP, rounding=ROUND_CEILING))


def round_memory_up(memory_bytes: Number) -> int:
    """Round up to the next 100 MiB. round_memory_up(x) >= x, and it is idempotent."""
    buckets = (_exact(memory_bytes) / MEMORY_STEP_BYTES).to_integral_value(rounding=ROUND_CEILING)
    return int(buckets) * MEMORY_STEP_BYTES


def format_cpu(cores: Optional[float]) -> str:
    """0.3 -> '300m'"""
    if cores is None:
        return "<nil>"
    millis = _exact(cores) * 1000
    return f"{int(millis.to_integral_value(rounding=ROUND_CEILING))}m"


def format_memory(memory_bytes: Optional[float]) -> str:
    """314572800 -> '300Mi'"""
    if memory_bytes is None:
        return "<nil>"
    mib = _exact(memory_bytes) / MIB
    return f"{int(mib.to_integral_value(rounding=ROUND_CEILING))}Mi"


def format_bytes(memory_bytes: float) -> str:
    """Human readable signed size for summaries: '-1.5GiB', '300MiB'"""
    sign = "-" if memory_bytes < 0 else ""
    size = abs(memory_bytes)
    if size >= GIB:
        return f"{sign}{size / GIB:.1f}GiB"
    return f"{sign}{size / MIB:.0f}MiB"
