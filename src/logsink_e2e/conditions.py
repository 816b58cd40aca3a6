"""Pod conditions evaluated by the poller.

Conditions take a Snapshot of V1Pod objects and return a truthy value when
satisfied. They re-check the ``app`` label themselves because snapshots are
best-effort and selectors may be broader than the condition.

Example:
    >>> cond = pod_in_phase("e2e-log-emitter", POD_SUCCEEDED)
    >>> cond(Snapshot(items=[]))  # nothing scheduled yet
"""

from __future__ import annotations

from typing import Any

from logsink_e2e.errors import PodFailedError
from logsink_e2e.polling import Condition, Snapshot

APP_LABEL = "app"

POD_PENDING = "Pending"
POD_RUNNING = "Running"
POD_SUCCEEDED = "Succeeded"
POD_FAILED = "Failed"


def app_selector(app: str) -> str:
    """Label selector matching ``app=<app>``."""
    return f"{APP_LABEL}={app}"


def pod_app(pod: Any) -> str | None:
    """Return the pod's ``app`` label, or None if unlabeled."""
    metadata = getattr(pod, "metadata", None)
    labels = getattr(metadata, "labels", None) or {}
    return labels.get(APP_LABEL)


def pod_phase(pod: Any) -> str | None:
    """Return the pod's phase, or None before the kubelet reports status."""
    status = getattr(pod, "status", None)
    return getattr(status, "phase", None)


def pod_is_ready(pod: Any) -> bool:
    """Return True if the pod has container statuses and all are ready."""
    status = getattr(pod, "status", None)
    statuses = getattr(status, "container_statuses", None) or []
    if not statuses:
        return False
    return all(bool(s.ready) for s in statuses)


def pod_in_phase(app: str, phase: str, *, fail_on: str | None = POD_FAILED) -> Condition:
    """Condition satisfied by the first pod labelled ``app`` in ``phase``.

    Args:
        app: Expected value of the ``app`` label.
        phase: Pod phase to wait for (e.g., "Running", "Succeeded").
        fail_on: Terminal phase that ends the wait with an error when no
            matching pod has reached ``phase``. None waits regardless.

    Returns:
        Condition returning the matching pod's name, or None.

    Raises:
        PodFailedError: From the condition if a matching pod is in
            ``fail_on`` and none is in ``phase``.
    """

    def check(snapshot: Snapshot) -> str | None:
        failed = None
        for pod in snapshot:
            if pod_app(pod) != app:
                continue
            current = pod_phase(pod)
            if current == phase:
                return pod.metadata.name
            if fail_on is not None and current == fail_on and failed is None:
                failed = pod.metadata.name
        if failed is not None:
            raise PodFailedError(app, failed, phase)
        return None

    check.__name__ = f"pod_in_phase[{app}={phase}]"
    return check


def count_ready(snapshot: Snapshot, app: str) -> int:
    """Count pods labelled ``app`` whose containers are all ready."""
    return sum(1 for pod in snapshot if pod_app(pod) == app and pod_is_ready(pod))


def forwarders_ready(app: str = "fluent-bit-ds") -> Condition:
    """Condition satisfied when one ready forwarder pod runs per node.

    The snapshot context must be the current node count, fetched on every
    attempt because nodes may join or leave during the wait.

    Args:
        app: ``app`` label of the forwarder daemonset pods.

    Returns:
        Condition returning True when the ready count equals the node count.

    Raises:
        TypeError: From the condition if the snapshot carries no node count.
    """

    def check(snapshot: Snapshot) -> bool:
        expected = snapshot.context
        if not isinstance(expected, int) or isinstance(expected, bool):
            msg = f"expected node count as snapshot context, got {expected!r}"
            raise TypeError(msg)
        return count_ready(snapshot, app) == expected

    check.__name__ = f"forwarders_ready[{app}]"
    return check


__all__ = [
    "APP_LABEL",
    "POD_FAILED",
    "POD_PENDING",
    "POD_RUNNING",
    "POD_SUCCEEDED",
    "app_selector",
    "count_ready",
    "forwarders_ready",
    "pod_app",
    "pod_in_phase",
    "pod_is_ready",
    "pod_phase",
]
