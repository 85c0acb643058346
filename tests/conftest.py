"""
Test fixtures and configuration for pytest
"""
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
from kubernetes import client

sys.path.insert(0, str(Path(__file__).parent.parent))

REVISION = "deployment.kubernetes.io/revision"
MIB = 1024 * 1024


def make_container(name, requests=None, limits=None):
    return client.V1Container(
        name=name,
        resources=client.V1ResourceRequirements(requests=requests, limits=limits),
    )


def make_deployment(name, namespace="default", revision="1", replicas=1, containers=None, labels=None):
    labels = labels or {"app": name}
    annotations = {REVISION: revision} if revision is not None else None
    return client.V1Deployment(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, annotations=annotations),
        spec=client.V1DeploymentSpec(
            replicas=replicas,
            selector=client.V1LabelSelector(match_labels=labels),
            template=client.V1PodTemplateSpec(
                spec=client.V1PodSpec(containers=containers or [make_container("app")])
            ),
        ),
    )


def make_replica_set(name, revision, labels, namespace="default"):
    return client.V1ReplicaSet(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, annotations={REVISION: revision}),
        spec=client.V1ReplicaSetSpec(selector=client.V1LabelSelector(match_labels=labels)),
    )


def make_pod(name, namespace="default"):
    return client.V1Pod(metadata=client.V1ObjectMeta(name=name, namespace=namespace))


class FakeAppsApi:
    """Serves deployments per namespace and replica sets per (namespace, label_selector)"""

    def __init__(self, deployments=None, replica_sets=None):
        self.deployments = deployments or {}
        self.replica_sets = replica_sets or {}
        self.calls = []

    def list_namespaced_deployment(self, namespace, **kwargs):
        self.calls.append(("deployments", namespace, kwargs))
        return SimpleNamespace(items=self.deployments.get(namespace, []))

    def list_namespaced_replica_set(self, namespace, label_selector="", **kwargs):
        self.calls.append(("replica_sets", namespace, label_selector))
        return SimpleNamespace(items=self.replica_sets.get((namespace, label_selector), []))


class FakeCoreApi:
    def __init__(self, pods=None):
        self.pods = pods or {}
        self.calls = []

    def list_namespaced_pod(self, namespace, label_selector="", **kwargs):
        self.calls.append((namespace, label_selector))
        return SimpleNamespace(items=self.pods.get((namespace, label_selector), []))


class FakePrometheus:
    """Answers instant queries by signal, recognised from the PromQL text"""

    def __init__(self, by_signal=None):
        # signal -> {container: value}
        self.by_signal = by_signal or {}
        self.queries = []

    @staticmethod
    def signal_of(promql):
        kind = "cpu" if "cpu_usage" in promql else "memory"
        role = "request" if "quantile_over_time" in promql else "limit"
        return f"{role}_{kind}"

    def query_instant(self, promql, at=None):
        self.queries.append((promql, at))
        values = self.by_signal.get(self.signal_of(promql), {})
        return [
            {"metric": {"container": c, "pod": "ignored"}, "value": [at or 0, str(v)]}
            for c, v in values.items()
        ]


@pytest.fixture
def mock_prometheus_response():
    """Mock Prometheus instant-vector response"""
    return {
        "status": "success",
        "data": {
            "resultType": "vector",
            "result": [
                {
                    "metric": {"container": "web", "namespace": "shop", "pod": "api-6c9f7-abcde"},
                    "value": [1704355200, "0.27"]
                },
                {
                    "metric": {"container": "worker", "namespace": "shop", "pod": "api-6c9f7-abcde"},
                    "value": [1704355200, "1.5"]
                }
            ]
        }
    }


@pytest.fixture
def api_cluster():
    """The 'api' deployment: 3 replicas, web + sidecar, with one stale replica set"""
    deployment = make_deployment(
        "api", namespace="shop", revision="4", replicas=3,
        containers=[
            make_container("web", requests={"memory": "300Mi"}, limits={"cpu": "1", "memory": "512Mi"}),
            make_container("sidecar", requests={"cpu": "50m", "memory": "64Mi"}),
        ],
    )
    apps = FakeAppsApi(
        deployments={"shop": [deployment]},
        replica_sets={("shop", "app=api"): [
            make_replica_set("api-old", "3", {"app": "api", "pod-template-hash": "old"}, namespace="shop"),
            make_replica_set("api-6c9f7", "4", {"app": "api", "pod-template-hash": "6c9f7"}, namespace="shop"),
        ]},
    )
    core = FakeCoreApi(pods={
        ("shop", "app=api,pod-template-hash=6c9f7"): [
            make_pod("api-6c9f7-aaaaa", "shop"),
            make_pod("api-6c9f7-bbbbb", "shop"),
            make_pod("api-6c9f7-ccccc", "shop"),
        ],
        ("shop", "app=api,pod-template-hash=old"): [make_pod("api-old-zzzzz", "shop")],
    })
    prom = FakePrometheus({
        "request_cpu": {"web": 0.27},
        "limit_cpu": {"web": 0.84},
        "request_memory": {"web": 250 * MIB},
        "limit_memory": {"web": 420 * MIB},
    })
    return SimpleNamespace(apps=apps, core=core, prom=prom)
