"""
Per-container usage aggregation for one replica group.

Four instant queries per replica group (not per pod), all evaluated at the
same timestamp:

- request CPU:    quantile of the CPU usage rate over the window
- limit CPU:      peak CPU usage rate over the window x margin
- request memory: quantile of working-set memory over the window
- limit memory:   peak working-set memory over the window x margin

Requests are averaged across the group's pods, limits take the worst pod.
"""
import logging
from typing import Dict, List, Optional

from analysis.models import ContainerUsage, ResourceValue
from config import CPU_USAGE_METRIC, MEMORY_USAGE_METRIC
from normalize.vector import values_by_label

logger = logging.getLogger(__name__)

GROUPING_LABEL = "container"

SIGNALS = ("request_cpu", "limit_cpu", "request_memory", "limit_memory")


def _promql_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def pod_selector(namespace: str, pod_names: List[str]) -> str:
    """Label matchers scoped to exactly these pods, excluding pause and pod-level series"""
    # pod names are DNS-1123 subdomains, '.' is the only regex metacharacter they can hold
    pod_regex = "|".join(name.replace(".", "\\.") for name in pod_names)
    return (
        f'namespace="{_promql_string(namespace)}", pod=~"{_promql_string(pod_regex)}", '
        f'container!="", container!="POD"'
    )


def build_queries(namespace: str, pod_names: List[str], window: str, quantile: float,
                  limit_margin: float, cpu_metric: str = CPU_USAGE_METRIC,
                  memory_metric: str = MEMORY_USAGE_METRIC) -> Dict[str, str]:
    sel = pod_selector(namespace, pod_names)
    return {
        "request_cpu": f'avg by ({GROUPING_LABEL}) (quantile_over_time({quantile}, {cpu_metric}{{{sel}}}[{window}]))',
        "limit_cpu": f'max by ({GROUPING_LABEL}) (max_over_time({cpu_metric}{{{sel}}}[{window}])) * {limit_margin}',
        "request_memory": f'avg by ({GROUPING_LABEL}) (quantile_over_time({quantile}, {memory_metric}{{{sel}}}[{window}]))',
        "limit_memory": f'max by ({GROUPING_LABEL}) (max_over_time({memory_metric}{{{sel}}}[{window}])) * {limit_margin}',
    }


def aggregate(prom, namespace: str, pod_names: List[str], window: str, quantile: float,
              limit_margin: float, at: Optional[float] = None,
              cpu_metric: str = CPU_USAGE_METRIC,
              memory_metric: str = MEMORY_USAGE_METRIC) -> Dict[str, ContainerUsage]:
    """
    Returns container name -> ContainerUsage for the given pods.

    A container missing from one query's result keeps that signal undetermined;
    a container missing from all of them is absent from the mapping.
    Backend failures propagate (PrometheusQueryError / PrometheusConnectionError).
    """
    if not pod_names:
        logger.warning(f"[{namespace}] no pods in replica group, usage undetermined")
        return {}

    queries = build_queries(namespace, pod_names, window, quantile, limit_margin, cpu_metric, memory_metric)

    per_signal: Dict[str, Dict[str, float]] = {}
    for signal in SIGNALS:
        result = prom.query_instant(queries[signal], at=at)
        per_signal[signal] = values_by_label(result, GROUPING_LABEL)

    containers = sorted(set().union(*(v.keys() for v in per_signal.values())))
    usage: Dict[str, ContainerUsage] = {}
    for name in containers:
        fields = {}
        for signal in SIGNALS:
            v = per_signal[signal].get(name)
            fields[signal] = ResourceValue.undetermined() if v is None else ResourceValue.present(v)
        usage[name] = ContainerUsage(**fields)
    return usage
