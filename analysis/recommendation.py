from typing import Dict, List, Optional, Tuple
import logging

from analysis.models import (
    ContainerSpec, ContainerUsage, RecommendationRow, ReplicaGroup, ResourceValue, Workload
)
from normalize.quantity import round_cpu_up, round_memory_up

logger = logging.getLogger(__name__)

# signal -> (label used in observations, rounding policy)
_POLICY = {
    "request_cpu": ("CPU Requests", round_cpu_up),
    "limit_cpu": ("CPU Limits", round_cpu_up),
    "request_memory": ("Memory Requests", round_memory_up),
    "limit_memory": ("Memory Limits", round_memory_up),
}

# recommendation / current ratios that warrant a resize note
DECREASE_BELOW = 0.8
INCREASE_ABOVE = 1.1


def _rounded(signal: str, measured: ResourceValue) -> ResourceValue:
    if not measured.is_present:
        return ResourceValue.undetermined()
    _, round_up = _POLICY[signal]
    return ResourceValue.present(round_up(measured.amount))


def request_delta(current: ResourceValue, recommended: ResourceValue) -> float:
    """current - recommended for one replica.

    An absent current value counts as adding the whole recommendation;
    an undetermined recommendation contributes nothing.
    """
    if not recommended.is_present:
        return 0.0
    if not current.is_present:
        return -recommended.amount
    return current.amount - recommended.amount


def _suggestion(label: str, current: ResourceValue, recommended: ResourceValue) -> Optional[str]:
    """'Decrease X' when the recommendation is >20% below the current value,
    'Increase X' when it is >10% above. Needs both values."""
    if not (current.is_present and recommended.is_present):
        return None
    cur, rec = current.amount, recommended.amount
    if rec < cur * DECREASE_BELOW:
        return f"Decrease {label}"
    if rec > cur * INCREASE_ABOVE:
        return f"Increase {label}"
    return None


def _observations(spec: ContainerSpec, recommended: Dict[str, ResourceValue]) -> List[str]:
    notes = []
    for signal, (label, _) in _POLICY.items():
        current = getattr(spec, signal)
        if not current.is_present:
            notes.append(f"Define {label}")
        if not recommended[signal].is_present:
            notes.append(f"Could not determine {label} from prometheus")
        suggestion = _suggestion(label, current, recommended[signal])
        if suggestion:
            notes.append(suggestion)
    return notes


def recommend_container(workload: Workload, spec: ContainerSpec, usage: ContainerUsage) -> RecommendationRow:
    recommended = {signal: _rounded(signal, getattr(usage, signal)) for signal in _POLICY}
    return RecommendationRow(
        namespace=workload.namespace,
        workload=workload.name,
        container=spec.name,
        recommended_request_cpu=recommended["request_cpu"],
        recommended_limit_cpu=recommended["limit_cpu"],
        recommended_request_memory=recommended["request_memory"],
        recommended_limit_memory=recommended["limit_memory"],
        current_request_cpu=spec.request_cpu,
        current_limit_cpu=spec.limit_cpu,
        current_request_memory=spec.request_memory,
        current_limit_memory=spec.limit_memory,
        cpu_delta=request_delta(spec.request_cpu, recommended["request_cpu"]),
        memory_delta=request_delta(spec.request_memory, recommended["request_memory"]),
        observations=_observations(spec, recommended),
    )


def recommend(workload: Workload, replica_group: ReplicaGroup,
              usage: Dict[str, ContainerUsage]) -> Tuple[List[RecommendationRow], float, float]:
    """
    Build one row per container of `workload` and its contribution to the totals.

    Only request deltas count, multiplied by the replica count: limits don't
    reserve scheduler capacity.
    """
    rows: List[RecommendationRow] = []
    total_cpu = 0.0
    total_memory = 0.0
    for spec in workload.containers:
        container_usage = usage.get(spec.name)
        if container_usage is None:
            logger.warning(
                f"[{workload.namespace}] {workload.name}/{spec.name}: no samples "
                f"for pods of {replica_group.replica_set}"
            )
            container_usage = ContainerUsage()
        row = recommend_container(workload, spec, container_usage)
        rows.append(row)
        total_cpu += row.cpu_delta * workload.replicas
        total_memory += row.memory_delta * workload.replicas
    return rows, total_cpu, total_memory
