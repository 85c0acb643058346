"""Snapshot types for one advisor pass.

CPU amounts are cores, memory amounts are bytes.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ValueState(Enum):
    PRESENT = "present"
    # not defined on the container spec
    ABSENT = "absent"
    # no metric sample to derive it from
    UNDETERMINED = "undetermined"


@dataclass(frozen=True)
class ResourceValue:
    state: ValueState
    amount: Optional[float] = None

    @classmethod
    def present(cls, amount: float) -> "ResourceValue":
        return cls(ValueState.PRESENT, float(amount))

    @classmethod
    def absent(cls) -> "ResourceValue":
        return cls(ValueState.ABSENT)

    @classmethod
    def undetermined(cls) -> "ResourceValue":
        return cls(ValueState.UNDETERMINED)

    @classmethod
    def from_optional(cls, amount: Optional[float]) -> "ResourceValue":
        """Spec values: None means the resource isn't defined"""
        return cls.absent() if amount is None else cls.present(amount)

    @property
    def is_present(self) -> bool:
        return self.state is ValueState.PRESENT

    def to_dict(self) -> Dict[str, Any]:
        return {"state": self.state.value, "amount": self.amount}


@dataclass(frozen=True)
class ContainerSpec:
    name: str
    request_cpu: ResourceValue = field(default_factory=ResourceValue.absent)
    limit_cpu: ResourceValue = field(default_factory=ResourceValue.absent)
    request_memory: ResourceValue = field(default_factory=ResourceValue.absent)
    limit_memory: ResourceValue = field(default_factory=ResourceValue.absent)


@dataclass(frozen=True)
class Workload:
    namespace: str
    name: str
    revision: str
    replicas: int
    containers: List[ContainerSpec] = field(default_factory=list)


@dataclass(frozen=True)
class ReplicaGroup:
    """Pods backing a workload's active revision"""
    replica_set: str
    pod_names: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ContainerUsage:
    """Aggregated usage of one container across its replica group"""
    request_cpu: ResourceValue = field(default_factory=ResourceValue.undetermined)
    limit_cpu: ResourceValue = field(default_factory=ResourceValue.undetermined)
    request_memory: ResourceValue = field(default_factory=ResourceValue.undetermined)
    limit_memory: ResourceValue = field(default_factory=ResourceValue.undetermined)


@dataclass
class RecommendationRow:
    namespace: str
    workload: str
    container: str
    recommended_request_cpu: ResourceValue
    recommended_limit_cpu: ResourceValue
    recommended_request_memory: ResourceValue
    recommended_limit_memory: ResourceValue
    current_request_cpu: ResourceValue
    current_limit_cpu: ResourceValue
    current_request_memory: ResourceValue
    current_limit_memory: ResourceValue
    # per replica, current - recommended; negative means the allocation grows
    cpu_delta: float = 0.0
    memory_delta: float = 0.0
    observations: List[str] = field(default_factory=list)
