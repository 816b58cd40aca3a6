"""Pytest configuration for logsink-e2e tests.

Fixtures:
    - fake_cluster: In-memory stand-in for ClusterClient
    - strict_cluster: fake_cluster that answers 404 inside a deleted namespace
    - api_exception: Factory for kubernetes ApiException with a status
    - fast_config: E2EConfig with short timeouts and no settle pause
    - make_pod: Factory for pod-shaped objects
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from types import SimpleNamespace
from typing import Any

import pytest
import structlog
from kubernetes.client.rest import ApiException

from logsink_e2e.config import E2EConfig
from logsink_e2e.polling import PollingConfig

FORWARDER_NAMESPACE = "knative-observability"


def make_api_exception(status: int, reason: str = "Error") -> ApiException:
    return ApiException(status=status, reason=reason)


def pod(
    name: str,
    app: str | None,
    phase: str | None = "Running",
    *,
    ready: bool | None = True,
) -> SimpleNamespace:
    """Build a pod-shaped object with the attributes conditions read."""
    statuses = [] if ready is None else [SimpleNamespace(ready=ready)]
    return SimpleNamespace(
        metadata=SimpleNamespace(name=name, labels={"app": app} if app else None),
        status=SimpleNamespace(phase=phase, container_statuses=statuses),
    )


class FakeCluster:
    """In-memory ClusterClient.

    Pods appear as soon as their owner is created: a Pod is Running, a Job
    gets one pod in job_phase (Succeeded). Forwarder pods are seeded with
    add_forwarders(). errors maps a kind (or "DeleteNamespace") to the
    exception its call raises. With enforce_namespaces, creates in a missing
    namespace are answered with 404 like a real API server.
    """

    def __init__(self, nodes: int = 3, *, enforce_namespaces: bool = False) -> None:
        self.nodes = nodes
        self.namespaces: set[str] = set()
        self.deleted_namespaces: list[str] = []
        self.pods: dict[str, list[Any]] = {}
        self.created: list[tuple[str, str, Any]] = []
        self.observer_output = "Logs Received: 3\nLogs Received: 10\n"
        self.on_create: Callable[[str, Any], None] | None = None
        self.errors: dict[str, Exception] = {}
        self.enforce_namespaces = enforce_namespaces
        self.job_phase = "Succeeded"

    def add_forwarders(self, ready: int, total: int | None = None) -> None:
        total = ready if total is None else total
        self.pods[FORWARDER_NAMESPACE] = [
            pod(f"fluent-bit-ds-{i}", "fluent-bit-ds", ready=i < ready) for i in range(total)
        ]

    def _record(self, kind: str, namespace: str, body: Any) -> Any:
        if kind in self.errors:
            raise self.errors[kind]
        if self.enforce_namespaces and namespace not in self.namespaces:
            raise make_api_exception(404, "NotFound")
        self.created.append((kind, namespace, body))
        if self.on_create is not None:
            self.on_create(kind, body)
        return body

    # Namespaces

    def create_namespace(self, name: str) -> None:
        if "Namespace" in self.errors:
            raise self.errors["Namespace"]
        if name in self.namespaces:
            raise make_api_exception(409, "AlreadyExists")
        self.namespaces.add(name)

    def read_namespace(self, name: str) -> Any:
        if name not in self.namespaces:
            raise make_api_exception(404, "NotFound")
        return SimpleNamespace(metadata=SimpleNamespace(name=name))

    def delete_namespace(self, name: str) -> None:
        if "DeleteNamespace" in self.errors:
            raise self.errors["DeleteNamespace"]
        if name not in self.namespaces:
            raise make_api_exception(404, "NotFound")
        self.namespaces.discard(name)
        self.pods.pop(name, None)
        self.deleted_namespaces.append(name)

    # Workloads

    def create_service(self, namespace: str, body: Any) -> Any:
        return self._record("Service", namespace, body)

    def create_pod(self, namespace: str, body: Any) -> Any:
        self._record("Pod", namespace, body)
        labels = body.metadata.labels or {}
        self.pods.setdefault(namespace, []).append(
            pod(body.metadata.name, labels.get("app"), "Running")
        )
        return body

    def create_job(self, namespace: str, body: Any) -> Any:
        self._record("Job", namespace, body)
        labels = body.spec.template.metadata.labels or {}
        self.pods.setdefault(namespace, []).append(
            pod(f"{body.metadata.name}-x7k2p", labels.get("app"), self.job_phase, ready=False)
        )
        return body

    def create_log_sink(self, namespace: str, body: dict[str, Any], *, scope: str) -> Any:
        return self._record(body["kind"], namespace, body)

    # Observation

    def list_pods(self, namespace: str, label_selector: str = "") -> list[Any]:
        pods = list(self.pods.get(namespace, []))
        if not label_selector:
            return pods
        key, _, value = label_selector.partition("=")
        return [p for p in pods if (p.metadata.labels or {}).get(key) == value]

    def node_count(self) -> int:
        return self.nodes

    def read_pod_log(self, name: str, namespace: str) -> bytes:
        return self.observer_output.encode()

    def created_kinds(self) -> list[str]:
        return [kind for kind, _, _ in self.created]


# =============================================================================
# Global State
# =============================================================================


@pytest.fixture(autouse=True)
def reset_structlog() -> Iterator[None]:
    """Undo configure_logging() calls made by CLI tests."""
    yield
    structlog.reset_defaults()


# =============================================================================
# Cluster Fixtures
# =============================================================================


@pytest.fixture
def fake_cluster() -> FakeCluster:
    """FakeCluster with three nodes and three ready forwarders."""
    cluster = FakeCluster(nodes=3)
    cluster.add_forwarders(ready=3)
    return cluster


@pytest.fixture
def strict_cluster() -> FakeCluster:
    """FakeCluster that rejects creates in a missing namespace with 404."""
    cluster = FakeCluster(nodes=3, enforce_namespaces=True)
    cluster.add_forwarders(ready=3)
    return cluster


@pytest.fixture
def api_exception() -> Callable[..., ApiException]:
    """Factory for ApiException instances.

    Returns:
        Callable taking (status, reason).
    """
    return make_api_exception


@pytest.fixture
def make_pod() -> Callable[..., SimpleNamespace]:
    """Factory for pod-shaped objects."""
    return pod


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def fast_config() -> E2EConfig:
    """E2EConfig tuned for unit tests: no settle pause, sub-second timeouts."""
    return E2EConfig(
        prefix="t",
        settle_interval=0.0,
        polling=PollingConfig(timeout=0.5, interval=0.05),
    )
