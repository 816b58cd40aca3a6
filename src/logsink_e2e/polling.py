"""Condition polling against an eventually-consistent cluster.

Every wait in the suite goes through this module: the scenario never sleeps
on its own except for the forwarder settle interval. A poll fetches a fresh
snapshot of objects (usually pods matched by a label selector), hands it to a
condition and stops as soon as the condition returns a truthy value, which is
passed back to the caller in a PollResult.

Outcomes:
    - condition truthy          -> PollResult
    - condition raises          -> PredicateError, immediately, never retried
    - fetch raises              -> transient, remembered as last_error
    - budget exhausted          -> PollingTimeoutError
    - cancellation token fires  -> ScenarioCancelledError

An empty snapshot is a normal "not yet" answer; conditions must tolerate
empty, partial and duplicate observations.

Example:
    from logsink_e2e.polling import PollingConfig, wait_for_pod_list_state

    result = wait_for_pod_list_state(
        client,
        pod_in_phase("e2e-syslog-receiver", "Running"),
        selector="app=e2e-syslog-receiver",
        namespace="observability-tests",
        config=PollingConfig(timeout=120.0),
    )
    print(result.value)  # name of the running pod
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from logsink_e2e.errors import (
    PollingTimeoutError,
    PredicateError,
    ScenarioCancelledError,
)

if TYPE_CHECKING:
    from logsink_e2e.cancellation import CancellationToken
    from logsink_e2e.client import ClusterClient

logger = structlog.get_logger(__name__)


class PollingConfig(BaseModel):
    """Configuration for condition polling.

    Attributes:
        timeout: Maximum wait time in seconds. Defaults to 480.0.
        interval: Poll interval in seconds. Defaults to 1.0.

    Example:
        config = PollingConfig(timeout=60.0, interval=2.0)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    timeout: float = Field(
        default=480.0,
        ge=0.0,
        description="Maximum wait time in seconds",
    )
    interval: float = Field(
        default=1.0,
        ge=0.05,
        description="Poll interval in seconds",
    )


@dataclass(frozen=True)
class Snapshot:
    """One observation handed to a condition.

    Attributes:
        items: Objects returned by the fetch (possibly empty or stale).
        context: Auxiliary observation fetched alongside the items, such as
            the current node count. None when no context fetcher is given.
        attempt: 1-based poll attempt that produced this snapshot.
    """

    items: list[Any] = field(default_factory=list)
    context: Any = None
    attempt: int = 1

    def __iter__(self) -> Iterator[Any]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class PollResult:
    """Outcome of a satisfied poll.

    Attributes:
        value: Truthy value returned by the condition.
        snapshot: Snapshot on which the condition held.
        attempts: Number of fetches performed.
        elapsed: Seconds spent polling.
    """

    value: Any
    snapshot: Snapshot
    attempts: int
    elapsed: float


Condition = Callable[[Snapshot], Any]


def wait_for(
    fetch: Callable[[], Iterable[Any]],
    condition: Condition,
    *,
    description: str = "condition",
    selector: str = "",
    namespace: str = "",
    context: Callable[[], Any] | None = None,
    config: PollingConfig | None = None,
    cancel_token: CancellationToken | None = None,
) -> PollResult:
    """Poll ``fetch`` until ``condition`` holds on a snapshot.

    Args:
        fetch: Returns the current objects of interest.
        condition: Called with each Snapshot; a truthy return ends the poll.
        description: Name used in logs and errors.
        selector: Label selector behind ``fetch`` (for diagnostics).
        namespace: Namespace behind ``fetch`` (for diagnostics).
        context: Optional callable fetched on every attempt and exposed as
            ``Snapshot.context``. Never cached between attempts.
        config: Timeout and interval. Defaults to PollingConfig().
        cancel_token: Token whose cancellation aborts the wait.

    Returns:
        PollResult carrying the condition's value.

    Raises:
        PredicateError: If the condition raises.
        PollingTimeoutError: If the condition never holds within the timeout.
        ScenarioCancelledError: If the token is cancelled while waiting.
    """
    config = config or PollingConfig()
    log = logger.bind(condition=description, selector=selector, namespace=namespace)
    start_time = time.monotonic()
    attempts = 0
    last_error: Exception | None = None
    last_observed: int | None = None

    while True:
        if cancel_token is not None and cancel_token.cancelled:
            raise ScenarioCancelledError(cancel_token.reason or "")

        attempts += 1
        snapshot: Snapshot | None = None
        try:
            items = list(fetch())
            observed_context = context() if context is not None else None
            snapshot = Snapshot(items=items, context=observed_context, attempt=attempts)
        except Exception as e:  # noqa: BLE001
            last_error = e
            log.debug("polling.fetch_failed", attempt=attempts, error=str(e))

        if snapshot is not None:
            last_observed = len(snapshot)
            try:
                value = condition(snapshot)
            except Exception as e:
                elapsed = time.monotonic() - start_time
                log.error("polling.predicate_failed", attempt=attempts, error=repr(e))
                raise PredicateError(
                    description, e, selector=selector, elapsed=elapsed
                ) from e

            if value:
                elapsed = time.monotonic() - start_time
                log.debug("polling.satisfied", attempts=attempts, elapsed=round(elapsed, 2))
                return PollResult(
                    value=value,
                    snapshot=snapshot,
                    attempts=attempts,
                    elapsed=elapsed,
                )

        elapsed = time.monotonic() - start_time
        if elapsed >= config.timeout:
            log.warning("polling.timeout", attempts=attempts, elapsed=round(elapsed, 2))
            raise PollingTimeoutError(
                description,
                config.timeout,
                last_error,
                selector=selector,
                namespace=namespace,
                elapsed=elapsed,
                attempts=attempts,
                last_observed=last_observed,
            )

        # Sleep for interval, but don't exceed remaining time
        sleep_time = min(config.interval, config.timeout - elapsed)
        if sleep_time > 0:
            if cancel_token is None:
                time.sleep(sleep_time)
            elif cancel_token.wait(sleep_time):
                raise ScenarioCancelledError(cancel_token.reason or "")


def wait_for_pod_list_state(
    client: ClusterClient,
    condition: Condition,
    *,
    selector: str,
    namespace: str,
    description: str | None = None,
    context: Callable[[], Any] | None = None,
    config: PollingConfig | None = None,
    cancel_token: CancellationToken | None = None,
) -> PollResult:
    """Poll the pods matching ``selector`` in ``namespace``.

    Args:
        client: Cluster client used to list pods.
        condition: Condition evaluated on each pod snapshot.
        selector: Label selector, e.g. "app=e2e-syslog-receiver".
        namespace: Namespace to list pods in.
        description: Name for logs and errors. Defaults to the selector.
        context: Optional auxiliary fetch (see wait_for).
        config: Timeout and interval.
        cancel_token: Token whose cancellation aborts the wait.

    Returns:
        PollResult carrying the condition's value.
    """
    return wait_for(
        lambda: client.list_pods(namespace, label_selector=selector),
        condition,
        description=description or f"pods {selector}",
        selector=selector,
        namespace=namespace,
        context=context,
        config=config,
        cancel_token=cancel_token,
    )


def wait_for_condition(
    condition: Callable[[], bool],
    timeout: float = 30.0,
    interval: float = 0.5,
    description: str = "condition",
    *,
    raise_on_timeout: bool = True,
) -> bool:
    """Poll a plain boolean callable until it is True or the timeout elapses.

    Exceptions raised by ``condition`` are treated as "not yet" and reported
    as ``last_error`` on timeout.

    Args:
        condition: Callable returning True when the condition is met.
        timeout: Maximum wait time in seconds. Defaults to 30.0.
        interval: Poll interval in seconds. Defaults to 0.5.
        description: Description for error messages. Defaults to "condition".
        raise_on_timeout: If True, raise PollingTimeoutError on timeout.
            If False, return False on timeout. Defaults to True.

    Returns:
        True if condition was met within timeout.
        False if raise_on_timeout=False and timeout occurred.

    Raises:
        PollingTimeoutError: If condition not met within timeout and
            raise_on_timeout=True.
    """
    start_time = time.monotonic()
    last_error: Exception | None = None

    while True:
        try:
            if condition():
                return True
        except Exception as e:  # noqa: BLE001
            last_error = e

        elapsed = time.monotonic() - start_time
        if elapsed >= timeout:
            if raise_on_timeout:
                raise PollingTimeoutError(description, timeout, last_error, elapsed=elapsed)
            return False

        sleep_time = min(interval, timeout - elapsed)
        if sleep_time > 0:
            time.sleep(sleep_time)


__all__ = [
    "Condition",
    "PollResult",
    "PollingConfig",
    "Snapshot",
    "wait_for",
    "wait_for_condition",
    "wait_for_pod_list_state",
]
