"""
Kubernetes API client construction
"""
import logging
from dataclasses import dataclass
from typing import Optional

from kubernetes import client, config

from errors import UpstreamError

logger = logging.getLogger(__name__)

SERVICE_ACCOUNT_NAMESPACE = '/var/run/secrets/kubernetes.io/serviceaccount/namespace'


@dataclass
class KubeClients:
    """API handles for one analysis pass"""
    apps: client.AppsV1Api
    core: client.CoreV1Api
    in_cluster: bool = False


def load_clients(kubeconfig_path: Optional[str] = None, context: Optional[str] = None) -> KubeClients:
    """Load configuration and build the API clients.

    An explicit kubeconfig wins; otherwise in-cluster configuration is tried
    first, then the default kubeconfig location.
    """
    in_cluster = False
    try:
        if kubeconfig_path:
            config.load_kube_config(config_file=kubeconfig_path, context=context)
        else:
            try:
                config.load_incluster_config()
                in_cluster = True
            except config.ConfigException:
                config.load_kube_config(context=context)
    except (config.ConfigException, OSError) as e:
        raise UpstreamError(f"could not load kubernetes configuration: {e}") from e

    logger.info(f"Kubernetes client initialized ({'in-cluster' if in_cluster else 'kubeconfig'})")
    return KubeClients(apps=client.AppsV1Api(), core=client.CoreV1Api(), in_cluster=in_cluster)


def default_namespace(clients: KubeClients, kubeconfig_path: Optional[str] = None,
                      context: Optional[str] = None) -> str:
    """Namespace to analyse when none is configured: the service account's
    namespace in-cluster, otherwise the active kube context's, else 'default'."""
    if clients.in_cluster:
        try:
            with open(SERVICE_ACCOUNT_NAMESPACE, 'r') as f:
                namespace = f.read().strip()
            if namespace:
                return namespace
        except FileNotFoundError:
            logger.warning("Service account namespace file not found, using 'default'")
        return 'default'

    try:
        contexts, active = config.list_kube_config_contexts(config_file=kubeconfig_path)
    except (config.ConfigException, OSError) as e:
        logger.warning(f"Could not read kube contexts, using 'default': {e}")
        return 'default'
    selected = active
    if context:
        selected = next((c for c in contexts if c.get('name') == context), active)
    return (selected or {}).get('context', {}).get('namespace') or 'default'
