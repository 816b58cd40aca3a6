"""Kubernetes client wrapper used by the suite.

ClusterClient is the single seam between the suite and the API server. It
exposes exactly the calls the fixture, provisioner and scenario need and lets
``ApiException`` propagate; callers decide which statuses are benign.

Authentication order when building from configuration:
    1. Explicit kubeconfig path (with optional context / cluster override)
    2. In-cluster service account, when nothing explicit is configured
    3. Default kubeconfig (~/.kube/config)

Example:
    >>> from logsink_e2e.client import ClusterClient
    >>> client = ClusterClient.from_config(E2EConfig(kubeconfig_path="~/.kube/config"))
    >>> client.node_count()
    3
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from kubernetes import client
from kubernetes import config as k8s_config
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from logsink_e2e.errors import ClusterConnectionError

if TYPE_CHECKING:
    from logsink_e2e.config import E2EConfig

logger = structlog.get_logger(__name__)

# Log sink custom resources reconciled by the sink controller
LOG_SINK_GROUP = "observability.knative.dev"
LOG_SINK_VERSION = "v1alpha1"
LOG_SINK_PLURALS = {
    "namespace": "logsinks",
    "cluster": "clusterlogsinks",
}
LOG_SINK_KINDS = {
    "namespace": "LogSink",
    "cluster": "ClusterLogSink",
}

# HTTP statuses the suite treats as benign
STATUS_NOT_FOUND = 404
STATUS_CONFLICT = 409

# Failures raised before the API server answered (connection refused, retries
# exhausted, TLS errors)
TRANSPORT_ERRORS: tuple[type[Exception], ...] = (HTTPError, OSError)


def is_already_exists(exc: ApiException) -> bool:
    """Return True if the API error means the object already exists."""
    return exc.status == STATUS_CONFLICT


def is_not_found(exc: ApiException) -> bool:
    """Return True if the API error means the object does not exist."""
    return exc.status == STATUS_NOT_FOUND


def _context_for_cluster(
    kubeconfig_path: str | None,
    cluster: str,
    preferred: str | None,
) -> str:
    """Pick the kubeconfig context that points at ``cluster``.

    The preferred (or active) context wins when it already targets the
    cluster; otherwise the first matching context is used.

    Raises:
        ClusterConnectionError: If no context references the cluster.
    """
    contexts, active = k8s_config.list_kube_config_contexts(config_file=kubeconfig_path)
    candidates = [c for c in contexts if c.get("context", {}).get("cluster") == cluster]
    if not candidates:
        raise ClusterConnectionError(f"no kubeconfig context for cluster '{cluster}'")

    wanted = preferred or (active or {}).get("name")
    for candidate in candidates:
        if candidate["name"] == wanted:
            return candidate["name"]
    return candidates[0]["name"]


def load_api_client(
    kubeconfig_path: str | None = None,
    context: str | None = None,
    cluster: str | None = None,
) -> client.ApiClient:
    """Build an ApiClient from kubeconfig or the in-cluster service account.

    Args:
        kubeconfig_path: Explicit kubeconfig file, or None for defaults.
        context: Kubeconfig context, or None for the active one.
        cluster: Cluster name override.

    Returns:
        Configured kubernetes ApiClient.

    Raises:
        ClusterConnectionError: If no usable configuration is found.
    """
    try:
        if kubeconfig_path is None and context is None and cluster is None:
            configuration = client.Configuration()
            try:
                k8s_config.load_incluster_config(client_configuration=configuration)
                logger.info("client.loaded_incluster_config")
                return client.ApiClient(configuration)
            except k8s_config.ConfigException:
                logger.debug("client.not_in_cluster")

        if cluster:
            context = _context_for_cluster(kubeconfig_path, cluster, context)

        api_client = k8s_config.new_client_from_config(
            config_file=kubeconfig_path,
            context=context,
        )
        logger.info(
            "client.loaded_kubeconfig",
            kubeconfig_path=kubeconfig_path,
            context=context,
            cluster=cluster,
        )
        return api_client
    except ClusterConnectionError:
        raise
    except (k8s_config.ConfigException, OSError, ValueError) as e:
        logger.error("client.config_failed", error=str(e))
        raise ClusterConnectionError(str(e)) from e


class ClusterClient:
    """Namespace, workload, log-sink and pod-log access for the suite.

    Attributes:
        core: CoreV1Api for namespaces, services, pods, nodes and logs.
        batch: BatchV1Api for jobs.
        custom: CustomObjectsApi for log sinks.
    """

    def __init__(self, core: Any, batch: Any, custom: Any) -> None:
        self.core = core
        self.batch = batch
        self.custom = custom

    @classmethod
    def from_api_client(cls, api_client: client.ApiClient) -> ClusterClient:
        """Wrap an already configured ApiClient."""
        return cls(
            core=client.CoreV1Api(api_client),
            batch=client.BatchV1Api(api_client),
            custom=client.CustomObjectsApi(api_client),
        )

    @classmethod
    def from_config(cls, config: E2EConfig) -> ClusterClient:
        """Build a client from the suite configuration.

        Raises:
            ClusterConnectionError: If the kubeconfig cannot be loaded.
        """
        api_client = load_api_client(
            kubeconfig_path=config.kubeconfig_path,
            context=config.context,
            cluster=config.cluster,
        )
        return cls.from_api_client(api_client)

    # Namespaces

    def create_namespace(self, name: str) -> Any:
        body = client.V1Namespace(metadata=client.V1ObjectMeta(name=name))
        return self.core.create_namespace(body=body)

    def read_namespace(self, name: str) -> Any:
        return self.core.read_namespace(name=name)

    def delete_namespace(self, name: str) -> Any:
        return self.core.delete_namespace(name=name, body=client.V1DeleteOptions())

    # Workloads

    def create_service(self, namespace: str, body: Any) -> Any:
        return self.core.create_namespaced_service(namespace=namespace, body=body)

    def create_pod(self, namespace: str, body: Any) -> Any:
        return self.core.create_namespaced_pod(namespace=namespace, body=body)

    def create_job(self, namespace: str, body: Any) -> Any:
        return self.batch.create_namespaced_job(namespace=namespace, body=body)

    def create_log_sink(self, namespace: str, body: dict[str, Any], *, scope: str) -> Any:
        """Create a LogSink or ClusterLogSink custom object."""
        return self.custom.create_namespaced_custom_object(
            group=LOG_SINK_GROUP,
            version=LOG_SINK_VERSION,
            namespace=namespace,
            plural=LOG_SINK_PLURALS[scope],
            body=body,
        )

    # Observation

    def list_pods(self, namespace: str, label_selector: str = "") -> list[Any]:
        """List pods in ``namespace`` matching ``label_selector``."""
        pods = self.core.list_namespaced_pod(
            namespace=namespace,
            label_selector=label_selector or None,
        )
        return list(pods.items or [])

    def list_nodes(self) -> list[Any]:
        return list(self.core.list_node().items or [])

    def node_count(self) -> int:
        """Current number of nodes in the cluster."""
        return len(self.list_nodes())

    def read_pod_log(self, name: str, namespace: str) -> bytes:
        """Return the raw log bytes of a pod."""
        response = self.core.read_namespaced_pod_log(
            name=name,
            namespace=namespace,
            _preload_content=False,
        )
        return response.data


__all__ = [
    "ApiException",
    "ClusterClient",
    "LOG_SINK_GROUP",
    "LOG_SINK_KINDS",
    "LOG_SINK_PLURALS",
    "LOG_SINK_VERSION",
    "TRANSPORT_ERRORS",
    "is_already_exists",
    "is_not_found",
    "load_api_client",
]
