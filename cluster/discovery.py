"""
Workload resolution: deployments -> active replica set -> pods.
"""
import logging
from typing import Iterator, List, Optional, Tuple

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from analysis.models import ContainerSpec, ReplicaGroup, ResourceValue, Workload
from errors import AmbiguousTopologyError, UpstreamError
from normalize.quantity import parse_cpu, parse_memory

logger = logging.getLogger(__name__)

REVISION_ANNOTATION = "deployment.kubernetes.io/revision"


class KubernetesAPIError(UpstreamError):
    pass


def selector_to_string(label_selector) -> str:
    """Render a V1LabelSelector in the API's `label_selector` query form"""
    if label_selector is None:
        return ""
    parts: List[str] = []
    for key, value in sorted((label_selector.match_labels or {}).items()):
        parts.append(f"{key}={value}")
    for expr in label_selector.match_expressions or []:
        values = ",".join(sorted(expr.values or []))
        if expr.operator == "In":
            parts.append(f"{expr.key} in ({values})")
        elif expr.operator == "NotIn":
            parts.append(f"{expr.key} notin ({values})")
        elif expr.operator == "Exists":
            parts.append(expr.key)
        elif expr.operator == "DoesNotExist":
            parts.append(f"!{expr.key}")
        else:
            raise ValueError(f"unsupported selector operator: {expr.operator}")
    return ",".join(parts)


def _revision(obj) -> Optional[str]:
    return (obj.metadata.annotations or {}).get(REVISION_ANNOTATION)


def _container_spec(container) -> ContainerSpec:
    resources = container.resources
    requests = (resources.requests if resources else None) or {}
    limits = (resources.limits if resources else None) or {}
    return ContainerSpec(
        name=container.name,
        request_cpu=ResourceValue.from_optional(parse_cpu(requests.get("cpu"))),
        limit_cpu=ResourceValue.from_optional(parse_cpu(limits.get("cpu"))),
        request_memory=ResourceValue.from_optional(parse_memory(requests.get("memory"))),
        limit_memory=ResourceValue.from_optional(parse_memory(limits.get("memory"))),
    )


def to_workload(deployment) -> Workload:
    namespace = deployment.metadata.namespace
    name = deployment.metadata.name
    revision = _revision(deployment)
    if revision is None:
        raise AmbiguousTopologyError(namespace, name, f"deployment has no {REVISION_ANNOTATION} annotation")
    replicas = deployment.spec.replicas
    return Workload(
        namespace=namespace,
        name=name,
        revision=revision,
        # the API server defaults an unset replica count to 1
        replicas=1 if replicas is None else int(replicas),
        containers=[_container_spec(c) for c in deployment.spec.template.spec.containers],
    )


def find_active_replica_set(workload: Workload, replica_sets: list):
    """Pick the replica set whose revision equals the deployment's. Exactly one must match."""
    matches = [rs for rs in replica_sets if _revision(rs) == workload.revision]
    if not matches:
        raise AmbiguousTopologyError(
            workload.namespace, workload.name,
            f"no replica set found for revision {workload.revision}"
        )
    if len(matches) > 1:
        names = ", ".join(rs.metadata.name for rs in matches)
        raise AmbiguousTopologyError(
            workload.namespace, workload.name,
            f"{len(matches)} replica sets share revision {workload.revision}: {names}"
        )
    return matches[0]


def _list(call, what: str, **kwargs):
    try:
        return call(**kwargs).items
    except ApiException as e:
        raise KubernetesAPIError(f"listing {what} failed ({e.status} {e.reason}) with {kwargs}") from e
    except HTTPError as e:
        # connection refused, TLS failure, retries exhausted
        raise KubernetesAPIError(f"listing {what} failed, API server unreachable: {e}") from e


def resolve_workloads(apps_api, core_api, namespaces: List[str]) -> Iterator[Tuple[Workload, ReplicaGroup]]:
    """Yield `(Workload, ReplicaGroup)` for every deployment, namespaces in the
    given order and deployments in listing order.

    Pods are selected with the active replica set's selector, so pods of
    older revisions still draining during a rollout are left out.
    """
    for namespace in namespaces:
        deployments = _list(apps_api.list_namespaced_deployment, "deployments", namespace=namespace)
        logger.info(f"[{namespace}] {len(deployments)} deployment(s)")

        for deployment in deployments:
            workload = to_workload(deployment)

            replica_sets = _list(
                apps_api.list_namespaced_replica_set, "replica sets",
                namespace=namespace,
                label_selector=selector_to_string(deployment.spec.selector),
            )
            replica_set = find_active_replica_set(workload, replica_sets)

            pods = _list(
                core_api.list_namespaced_pod, "pods",
                namespace=namespace,
                label_selector=selector_to_string(replica_set.spec.selector),
            )
            group = ReplicaGroup(
                replica_set=replica_set.metadata.name,
                pod_names=[p.metadata.name for p in pods],
            )
            logger.debug(
                f"[{namespace}] {workload.name} revision {workload.revision} -> "
                f"{group.replica_set} ({len(group.pod_names)} pods)"
            )
            yield workload, group
