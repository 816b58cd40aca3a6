"""Lifecycle of the namespace shared by one test run.

The fixture is the only owner of the namespace: it creates it on entry
(reusing one left behind by an aborted run), deletes it on success and
deletes it when the run's cancellation token fires. After a failed run the
namespace is kept for inspection unless ``teardown_on_failure`` is set.

State machine::

    absent -> creating -> present -> deleting -> absent

Example:
    token = CancellationToken()
    with NamespaceFixture(cluster, "observability-tests", cancel_token=token):
        scenario.run()
"""

from __future__ import annotations

import threading
from enum import Enum
from types import TracebackType
from typing import TYPE_CHECKING

import structlog
from kubernetes.client.rest import ApiException

from logsink_e2e.client import TRANSPORT_ERRORS, is_already_exists, is_not_found
from logsink_e2e.errors import (
    PollingTimeoutError,
    ProvisioningError,
    ScenarioCancelledError,
    TeardownError,
)
from logsink_e2e.polling import wait_for_condition

if TYPE_CHECKING:
    from logsink_e2e.cancellation import CancellationToken
    from logsink_e2e.client import ClusterClient
    from logsink_e2e.config import E2EConfig

logger = structlog.get_logger(__name__)


class NamespaceState(str, Enum):
    """Lifecycle state of the fixture namespace."""

    ABSENT = "absent"
    CREATING = "creating"
    PRESENT = "present"
    DELETING = "deleting"


class NamespaceFixture:
    """Creates, and exactly once deletes, the run's namespace.

    Teardown may be requested concurrently by the normal exit path and the
    cancellation callback. A reentrant lock plus a started flag make every
    call after the first a no-op, including a signal handler interrupting an
    in-flight teardown on the same thread.

    Attributes:
        cluster: Cluster client.
        namespace: Name of the namespace owned by this fixture.
        teardown_on_failure: Delete the namespace even after a failed run.
        wait_for_deletion: Block teardown until the API reports NotFound.
        deletion_timeout: Budget for that wait in seconds.
    """

    def __init__(
        self,
        cluster: ClusterClient,
        namespace: str,
        *,
        teardown_on_failure: bool = False,
        cancel_token: CancellationToken | None = None,
        wait_for_deletion: bool = False,
        deletion_timeout: float = 120.0,
    ) -> None:
        self.cluster = cluster
        self.namespace = namespace
        self.teardown_on_failure = teardown_on_failure
        self.wait_for_deletion = wait_for_deletion
        self.deletion_timeout = deletion_timeout
        self._state = NamespaceState.ABSENT
        self._lock = threading.RLock()
        self._teardown_started = False
        self._cancel_reason: str | None = None
        self._deferred_error: TeardownError | None = None
        self._log = logger.bind(namespace=namespace)

        if cancel_token is not None:
            cancel_token.subscribe(self._on_cancel)

    @classmethod
    def from_config(
        cls,
        cluster: ClusterClient,
        config: E2EConfig,
        cancel_token: CancellationToken | None = None,
    ) -> NamespaceFixture:
        return cls(
            cluster,
            config.namespace,
            teardown_on_failure=config.teardown_on_failure,
            cancel_token=cancel_token,
            wait_for_deletion=config.wait_for_namespace_deletion,
            deletion_timeout=config.namespace_deletion_timeout,
        )

    @property
    def state(self) -> NamespaceState:
        return self._state

    def setup(self) -> NamespaceState:
        """Ensure the namespace exists.

        An AlreadyExists answer means a previous run left it behind; it is
        adopted as present. The namespace is never recreated after teardown.
        If the run is cancelled while the create is in flight, the namespace
        is deleted again as soon as the create returns.

        Returns:
            The resulting state (PRESENT).

        Raises:
            ProvisioningError: If creation fails for another reason.
            ScenarioCancelledError: If cancellation arrived during creation.
            TeardownError: If the namespace created during cancellation
                cannot be deleted.
            RuntimeError: If called again after teardown began.
        """
        with self._lock:
            if self._teardown_started:
                msg = f"Namespace '{self.namespace}' was already torn down in this run"
                raise RuntimeError(msg)
            if self._state is NamespaceState.PRESENT:
                return self._state

            self._state = NamespaceState.CREATING
            try:
                self.cluster.create_namespace(self.namespace)
            except ApiException as e:
                if not is_already_exists(e):
                    self._state = NamespaceState.ABSENT
                    self._log.error("fixture.namespace_create_failed", status=e.status)
                    raise ProvisioningError(
                        "Namespace",
                        self.namespace,
                        status=e.status,
                        reason=str(e.reason or e),
                    ) from e
                self._log.info("fixture.namespace_already_exists")
            except TRANSPORT_ERRORS as e:
                self._state = NamespaceState.ABSENT
                self._log.error("fixture.namespace_create_failed", error=str(e))
                raise ProvisioningError("Namespace", self.namespace, reason=str(e)) from e
            else:
                self._log.info("fixture.namespace_created")

            if self._teardown_started:
                # Cancelled mid-create: the earlier delete saw NotFound
                self._log.warning("fixture.namespace_created_after_cancel")
                self._delete()
                self._state = NamespaceState.ABSENT
                self._deferred_error = None
                raise ScenarioCancelledError(self._cancel_reason or "")

            self._state = NamespaceState.PRESENT
            return self._state

    def teardown(self) -> bool:
        """Delete the namespace; NotFound counts as already deleted.

        Returns:
            True if this call performed the teardown, False if another call
            already did (or is doing) it.

        Raises:
            TeardownError: If deletion fails for another reason or the
                namespace does not disappear within ``deletion_timeout``.
        """
        with self._lock:
            if self._teardown_started:
                return False
            self._teardown_started = True
            self._state = NamespaceState.DELETING
            self._log.info("fixture.namespace_deleting")

            self._delete()

            if self.wait_for_deletion:
                try:
                    wait_for_condition(
                        self._namespace_gone,
                        timeout=self.deletion_timeout,
                        interval=1.0,
                        description=f"deletion of namespace {self.namespace}",
                    )
                except PollingTimeoutError as e:
                    raise TeardownError(self.namespace, e) from e

            self._state = NamespaceState.ABSENT
            self._log.info("fixture.namespace_deleted")
            return True

    def finish(self, *, succeeded: bool) -> bool:
        """Apply the exit policy at the end of a run.

        Args:
            succeeded: Whether every scenario passed.

        Returns:
            True if the namespace was torn down by this call.

        Raises:
            TeardownError: If this teardown fails, or if the teardown run by
                the cancellation callback failed earlier.
        """
        if self._deferred_error is not None:
            error, self._deferred_error = self._deferred_error, None
            raise error
        if succeeded or self.teardown_on_failure:
            return self.teardown()
        if not self._teardown_started:
            self._log.warning(
                "fixture.teardown_skipped",
                reason="run failed; namespace kept for inspection",
            )
        return False

    def _delete(self) -> None:
        try:
            self.cluster.delete_namespace(self.namespace)
        except ApiException as e:
            if not is_not_found(e):
                self._log.error("fixture.namespace_delete_failed", status=e.status)
                raise TeardownError(self.namespace, e.reason or e) from e
            self._log.info("fixture.namespace_already_deleted")
        except TRANSPORT_ERRORS as e:
            self._log.error("fixture.namespace_delete_failed", error=str(e))
            raise TeardownError(self.namespace, e) from e

    def _namespace_gone(self) -> bool:
        try:
            self.cluster.read_namespace(self.namespace)
        except ApiException as e:
            if is_not_found(e):
                return True
            raise
        return False

    def _on_cancel(self, reason: str) -> None:
        # Runs inside a signal handler; the failure is raised later by finish()
        self._cancel_reason = reason
        self._log.warning("fixture.cancelled", reason=reason)
        try:
            self.teardown()
        except TeardownError as e:
            self._log.error("fixture.cancel_teardown_failed", error=str(e))
            self._deferred_error = e

    def __enter__(self) -> NamespaceFixture:
        self.setup()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.finish(succeeded=exc_type is None)


__all__ = ["NamespaceFixture", "NamespaceState"]
