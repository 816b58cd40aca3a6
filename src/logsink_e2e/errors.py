"""Exception hierarchy for the log pipeline end-to-end suite.

All exceptions inherit from LogSinkE2EError so callers can catch every
suite failure with a single except clause. Each class carries the process
exit code the CLI reports for it.

Exception Hierarchy:
    LogSinkE2EError (base)
    ├── ClusterConnectionError    # kubeconfig / API client could not be built
    ├── ProvisioningError         # object creation failed (not AlreadyExists)
    ├── PollingTimeoutError       # condition never held within the budget
    ├── PredicateError            # the condition itself raised
    ├── PodFailedError            # a watched pod ended in phase Failed
    ├── LogAssertionError         # observer output lacks the expected count
    ├── ScenarioFailedError       # a named scenario step failed
    ├── ScenarioCancelledError    # run interrupted through the cancel token
    └── TeardownError             # namespace deletion failed (not NotFound)

Example:
    >>> from logsink_e2e.errors import ProvisioningError
    >>> raise ProvisioningError("Pod", "syslog-receiver", namespace="observability-tests")
    Traceback (most recent call last):
        ...
    ProvisioningError: Failed to create Pod 'syslog-receiver' in namespace ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from logsink_e2e.scenario import ScenarioReport


class LogSinkE2EError(Exception):
    """Base exception for all suite errors.

    Attributes:
        exit_code: CLI exit code for this error type (default: 1).
    """

    exit_code: int = 1


class ClusterConnectionError(LogSinkE2EError):
    """Raised when the Kubernetes client cannot be configured.

    Attributes:
        reason: Why the client could not be built.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Unable to configure Kubernetes client: {reason}")


class ProvisioningError(LogSinkE2EError):
    """Raised when an object cannot be created for a reason other than AlreadyExists.

    Attributes:
        kind: Object kind (Pod, Service, Job, LogSink, Namespace).
        name: Object name.
        namespace: Target namespace (empty for cluster-scoped objects).
        status: HTTP status returned by the API server, if any.
        reason: API server reason or exception text.
    """

    exit_code: int = 5

    def __init__(
        self,
        kind: str,
        name: str,
        *,
        namespace: str = "",
        status: int | None = None,
        reason: str = "",
    ) -> None:
        self.kind = kind
        self.name = name
        self.namespace = namespace
        self.status = status
        self.reason = reason
        message = f"Failed to create {kind} '{name}'"
        if namespace:
            message = f"{message} in namespace '{namespace}'"
        if status is not None:
            message = f"{message} (status {status})"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class PollingTimeoutError(LogSinkE2EError, TimeoutError):
    """Raised when a polled condition is not satisfied within its timeout.

    Inherits from TimeoutError so generic timeout handlers still catch it.

    Attributes:
        description: What was being waited for.
        timeout: Configured budget in seconds.
        selector: Label selector that was polled (empty for plain waits).
        namespace: Namespace that was polled (empty for plain waits).
        elapsed: Seconds actually spent polling.
        attempts: Number of snapshots fetched.
        last_error: Last transient fetch error, if any.
        last_observed: Number of objects in the last successful snapshot.
    """

    exit_code: int = 4

    def __init__(
        self,
        description: str,
        timeout: float,
        last_error: Exception | None = None,
        *,
        selector: str = "",
        namespace: str = "",
        elapsed: float | None = None,
        attempts: int = 0,
        last_observed: int | None = None,
    ) -> None:
        self.description = description
        self.timeout = timeout
        self.last_error = last_error
        self.selector = selector
        self.namespace = namespace
        self.elapsed = timeout if elapsed is None else elapsed
        self.attempts = attempts
        self.last_observed = last_observed
        message = f"Timeout waiting for {description} after {self.elapsed:.1f}s"
        if selector:
            message += f" (selector={selector!r}, namespace={namespace!r})"
        if last_observed is not None:
            message += f" [last snapshot: {last_observed} object(s)]"
        if last_error:
            message += f" (last error: {last_error})"
        super().__init__(message)


class PredicateError(LogSinkE2EError):
    """Raised when a poll condition raises instead of answering.

    A raising predicate signals a structural problem (malformed observation,
    wrong object shape), so polling stops and the error is never retried.

    Attributes:
        description: Name of the condition.
        selector: Label selector that was polled.
        elapsed: Seconds spent polling before the failure.
        cause: The exception raised by the predicate.

    The exit code follows the cause when it carries one (a failed pod is a
    scenario failure, not a suite error).
    """

    def __init__(
        self,
        description: str,
        cause: Exception,
        *,
        selector: str = "",
        elapsed: float = 0.0,
    ) -> None:
        self.description = description
        self.cause = cause
        self.selector = selector
        self.elapsed = elapsed
        self.exit_code = getattr(cause, "exit_code", 1)
        message = f"Condition '{description}' failed after {elapsed:.1f}s: {cause!r}"
        if selector:
            message += f" (selector={selector!r})"
        super().__init__(message)


class PodFailedError(LogSinkE2EError):
    """Raised by a pod condition when the watched pod has failed.

    A Failed pod never reaches the awaited phase, so waiting out the
    polling budget would only hide the failure behind a timeout.

    Attributes:
        app: Value of the pod's ``app`` label.
        pod: Name of the failed pod.
        phase: Phase that was awaited.
    """

    exit_code: int = 3

    def __init__(self, app: str, pod: str, phase: str) -> None:
        self.app = app
        self.pod = pod
        self.phase = phase
        super().__init__(f"Pod '{pod}' (app={app}) failed before reaching phase {phase}")


class LogAssertionError(LogSinkE2EError, AssertionError):
    """Raised when the observer output does not contain the expected count.

    Attributes:
        expected: Literal that had to appear in the output.
        output: Complete captured observer output.
    """

    exit_code: int = 3

    def __init__(self, expected: str, output: str) -> None:
        self.expected = expected
        self.output = output
        super().__init__(f"Expected {expected!r} in observer output:\n{output}\n")


class ScenarioFailedError(LogSinkE2EError):
    """Raised when a scenario step fails.

    The exit code follows the wrapped cause so a timeout inside a step is
    still reported as a timeout.

    Attributes:
        step: Name of the failing step.
        cause: The underlying error.
        report: Step results collected up to and including the failure.
    """

    def __init__(
        self,
        step: str,
        cause: Exception,
        report: ScenarioReport | None = None,
    ) -> None:
        self.step = step
        self.cause = cause
        self.report = report
        self.exit_code = getattr(cause, "exit_code", 3)
        super().__init__(f"Step '{step}' failed: {cause}")


class ScenarioCancelledError(LogSinkE2EError):
    """Raised when a run is interrupted through its cancellation token.

    Attributes:
        reason: What triggered the cancellation (e.g. "SIGINT").
    """

    exit_code: int = 130

    def __init__(self, reason: str = "") -> None:
        self.reason = reason
        message = "Scenario cancelled"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class TeardownError(LogSinkE2EError):
    """Raised when the test namespace cannot be deleted.

    A failed teardown leaves a polluted cluster for the next run, so it is
    fatal to the process rather than a test failure.

    Attributes:
        namespace: The namespace that could not be deleted.
        reason: API server reason or exception text.
    """

    exit_code: int = 6

    def __init__(self, namespace: str, reason: Any = "") -> None:
        self.namespace = namespace
        self.reason = str(reason)
        message = f"Error deleting namespace '{namespace}'"
        if self.reason:
            message = f"{message}: {self.reason}"
        super().__init__(message)


__all__ = [
    "ClusterConnectionError",
    "LogAssertionError",
    "LogSinkE2EError",
    "PodFailedError",
    "PollingTimeoutError",
    "PredicateError",
    "ProvisioningError",
    "ScenarioCancelledError",
    "ScenarioFailedError",
    "TeardownError",
]
