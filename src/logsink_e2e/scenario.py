"""End-to-end scenario: logs emitted in the cluster reach the sink.

The scenario runs a fixed sequence of steps. Each step blocks until the
cluster has been observed in the expected state, so a step passes only
after its condition held on a real snapshot, never because a create call
returned.

Steps:
    1. create_log_sink            LogSink -> <prefix>syslog-receiver.<namespace>:24903
    2. create_syslog_receiver     Service + Pod exposing an ingestion counter
    3. wait_for_receiver_running  receiver pod phase Running
    4. wait_for_forwarders_ready  settle, then one ready forwarder per node
    5. emit_logs                  Job printing 10 lines, phase Succeeded
    6. observe_log_count          Job sampling the counter, phase Succeeded
    7. assert_logs_received       observer output contains "Logs Received: 10"

All object names and selectors carry the run prefix, except the forwarder
selector which targets the shared daemonset managed outside the suite.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from logsink_e2e.conditions import (
    POD_RUNNING,
    POD_SUCCEEDED,
    app_selector,
    forwarders_ready,
    pod_in_phase,
)
from logsink_e2e.errors import (
    LogAssertionError,
    ScenarioCancelledError,
    ScenarioFailedError,
)
from logsink_e2e.polling import PollResult, wait_for_pod_list_state
from logsink_e2e.provisioner import (
    LogSinkSpec,
    PortSpec,
    ResourceDescriptor,
    ResourceKind,
    ResourceProvisioner,
)
from logsink_e2e.telemetry import get_tracer, step_span

if TYPE_CHECKING:
    from opentelemetry.trace import Tracer

    from logsink_e2e.cancellation import CancellationToken
    from logsink_e2e.client import ClusterClient
    from logsink_e2e.config import E2EConfig
    from logsink_e2e.polling import Condition

logger = structlog.get_logger(__name__)

SYSLOG_PORT = 24903
METRICS_PORT = 6060

RECEIVER_IMAGE = "oratos/crosstalk-receiver:v0.3"
EMITTER_IMAGE = "ubuntu:xenial"
OBSERVER_IMAGE = "oratos/ci-base"

LOG_LINE_COUNT = 10
EMIT_INTERVAL = 0.5
OBSERVER_SAMPLES = 10
OBSERVER_INTERVAL = 1

RECEIVER = "syslog-receiver"
EMITTER = "log-emitter"
OBSERVER = "log-observer"
TEST_MESSAGE = "test-log-message"


def expected_count_line(count: int = LOG_LINE_COUNT) -> str:
    """Line the observer prints once every emitted log was ingested."""
    return f"Logs Received: {count}"


# =============================================================================
# Object declarations
# =============================================================================


def log_sink_spec(prefix: str, namespace: str, sink_type: str = "syslog") -> LogSinkSpec:
    return LogSinkSpec(
        type=sink_type,
        host=f"{prefix}{RECEIVER}.{namespace}",
        port=SYSLOG_PORT,
    )


def receiver_service(prefix: str) -> ResourceDescriptor:
    return ResourceDescriptor(
        kind=ResourceKind.SERVICE,
        name=f"{prefix}{RECEIVER}",
        ports=(
            PortSpec(name="syslog", port=SYSLOG_PORT),
            PortSpec(name="metrics", port=METRICS_PORT),
        ),
        selector={"app": f"{prefix}{RECEIVER}"},
    )


def receiver_pod(prefix: str) -> ResourceDescriptor:
    return ResourceDescriptor(
        kind=ResourceKind.POD,
        name=f"{prefix}{RECEIVER}",
        labels={"app": f"{prefix}{RECEIVER}"},
        image=RECEIVER_IMAGE,
        container_name=RECEIVER,
        ports=(
            PortSpec(name="syslog-port", port=SYSLOG_PORT),
            PortSpec(name="metrics-port", port=METRICS_PORT),
        ),
        env={
            "SYSLOG_PORT": str(SYSLOG_PORT),
            "METRICS_PORT": str(METRICS_PORT),
            "MESSAGE": f"{prefix}{TEST_MESSAGE}",
        },
    )


def log_emitter_job(prefix: str) -> ResourceDescriptor:
    script = (
        f"for _ in {{1..{LOG_LINE_COUNT}}}; do "
        f"echo {prefix}{TEST_MESSAGE}; sleep {EMIT_INTERVAL}; done"
    )
    return ResourceDescriptor(
        kind=ResourceKind.JOB,
        name=f"{prefix}{EMITTER}",
        labels={"app": f"{prefix}{EMITTER}"},
        image=EMITTER_IMAGE,
        container_name=EMITTER,
        command=("bash", "-c", script),
        restart_policy="Never",
        backoff_limit=0,
    )


def log_observer_job(prefix: str, namespace: str) -> ResourceDescriptor:
    metrics_url = f"http://{prefix}{RECEIVER}.{namespace}:{METRICS_PORT}/metrics"
    script = (
        f"for _ in {{1..{OBSERVER_SAMPLES}}}; do\n"
        f"  LOG_COUNT=$(curl -s {metrics_url} | jq -r '.cluster')\n"
        '  echo "Logs Received: $LOG_COUNT"\n'
        f"  sleep {OBSERVER_INTERVAL}\n"
        "done\n"
    )
    return ResourceDescriptor(
        kind=ResourceKind.JOB,
        name=f"{prefix}{OBSERVER}",
        labels={"app": f"{prefix}{OBSERVER}"},
        image=OBSERVER_IMAGE,
        container_name=OBSERVER,
        command=("bash", "-c", script),
        restart_policy="Never",
        backoff_limit=0,
    )


# =============================================================================
# Results
# =============================================================================


@dataclass
class StepResult:
    """Outcome of one scenario step.

    Attributes:
        name: Step name.
        passed: True once the step's condition held.
        elapsed: Seconds spent in the step.
        detail: Diagnostic payload (pod name, captured output, error text).
    """

    name: str
    passed: bool
    elapsed: float
    detail: str = ""


@dataclass
class ScenarioReport:
    """Ordered step results of one scenario run."""

    prefix: str
    namespace: str
    steps: list[StepResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return bool(self.steps) and all(step.passed for step in self.steps)

    @property
    def failed_step(self) -> StepResult | None:
        return next((step for step in self.steps if not step.passed), None)

    def format(self) -> str:
        """Human-readable summary, one line per step."""
        lines = [f"Scenario (prefix={self.prefix!r}, namespace={self.namespace!r})"]
        for step in self.steps:
            mark = "PASS" if step.passed else "FAIL"
            lines.append(f"  [{mark}] {step.name} ({step.elapsed:.1f}s)")
        failed = self.failed_step
        if failed is not None and failed.detail:
            lines.append(f"Failure detail for {failed.name}:")
            lines.append(failed.detail)
        return "\n".join(lines)


# =============================================================================
# Driver
# =============================================================================


class LogPipelineScenario:
    """Drives the log delivery scenario against one namespace.

    Attributes:
        cluster: Cluster client.
        config: Suite configuration.
        prefix: Run prefix applied to names and selectors.
        provisioner: Provisioner bound to the fixture namespace.
    """

    def __init__(
        self,
        cluster: ClusterClient,
        config: E2EConfig,
        *,
        prefix: str | None = None,
        cancel_token: CancellationToken | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        self.cluster = cluster
        self.config = config
        self.prefix = config.prefix if prefix is None else prefix
        self.namespace = config.namespace
        self.cancel_token = cancel_token
        self.tracer = tracer or get_tracer()
        self.provisioner = ResourceProvisioner(cluster, self.namespace)
        self._log = logger.bind(prefix=self.prefix, namespace=self.namespace)

    def _app(self, base: str) -> str:
        return f"{self.prefix}{base}"

    def _wait_for_pods(
        self,
        condition: Condition,
        selector: str,
        *,
        namespace: str | None = None,
        context: Callable[[], Any] | None = None,
    ) -> PollResult:
        return wait_for_pod_list_state(
            self.cluster,
            condition,
            selector=selector,
            namespace=namespace or self.namespace,
            description=getattr(condition, "__name__", selector),
            context=context,
            config=self.config.polling,
            cancel_token=self.cancel_token,
        )

    def _pause(self, seconds: float) -> None:
        if seconds <= 0:
            return
        if self.cancel_token is None:
            time.sleep(seconds)
        elif self.cancel_token.wait(seconds):
            raise ScenarioCancelledError(self.cancel_token.reason or "")

    # Steps

    def create_log_sink(self) -> str:
        name = f"{self.prefix}test"
        spec = log_sink_spec(self.prefix, self.namespace, self.config.sink_type)
        self.provisioner.create_log_sink(name, spec, scope=self.config.sink_scope)
        return name

    def create_syslog_receiver(self) -> str:
        self.provisioner.create(receiver_service(self.prefix))
        self.provisioner.create(receiver_pod(self.prefix))
        return self._app(RECEIVER)

    def wait_for_receiver_running(self) -> str:
        app = self._app(RECEIVER)
        result = self._wait_for_pods(pod_in_phase(app, POD_RUNNING), app_selector(app))
        return result.value

    def wait_for_forwarders_ready(self) -> str:
        self._log.info("scenario.settling", seconds=self.config.settle_interval)
        self._pause(self.config.settle_interval)
        result = self._wait_for_pods(
            forwarders_ready(self.config.forwarder_app),
            app_selector(self.config.forwarder_app),
            namespace=self.config.forwarder_namespace,
            context=self.cluster.node_count,
        )
        return f"{result.snapshot.context} forwarder(s) ready"

    def emit_logs(self) -> str:
        app = self._app(EMITTER)
        self.provisioner.create(log_emitter_job(self.prefix))
        result = self._wait_for_pods(pod_in_phase(app, POD_SUCCEEDED), app_selector(app))
        return result.value

    def observe_log_count(self) -> str:
        app = self._app(OBSERVER)
        self.provisioner.create(log_observer_job(self.prefix, self.namespace))
        result = self._wait_for_pods(pod_in_phase(app, POD_SUCCEEDED), app_selector(app))
        return result.value

    def assert_logs_received(self, observer_pod: str) -> str:
        raw = self.cluster.read_pod_log(observer_pod, self.namespace)
        output = raw.decode("utf-8", errors="replace")
        expected = expected_count_line()
        if expected not in output:
            raise LogAssertionError(expected, output)
        return output

    # Orchestration

    def _run_step(self, report: ScenarioReport, name: str, step: Callable[[], Any]) -> Any:
        if self.cancel_token is not None and self.cancel_token.cancelled:
            raise ScenarioCancelledError(self.cancel_token.reason or "")

        log = self._log.bind(step=name)
        log.info("scenario.step_started")
        start = time.monotonic()
        try:
            with step_span(self.tracer, name, prefix=self.prefix, namespace=self.namespace):
                value = step()
        except ScenarioCancelledError:
            log.warning("scenario.step_cancelled")
            raise
        except Exception as e:
            if self.cancel_token is not None and self.cancel_token.cancelled:
                # The namespace is being torn down underneath the step
                log.warning("scenario.step_cancelled", error=str(e))
                raise ScenarioCancelledError(self.cancel_token.reason or "") from e
            elapsed = time.monotonic() - start
            detail = e.output if isinstance(e, LogAssertionError) else str(e)
            report.steps.append(StepResult(name, passed=False, elapsed=elapsed, detail=detail))
            log.error("scenario.step_failed", elapsed=round(elapsed, 2), error=str(e))
            raise ScenarioFailedError(name, e, report) from e

        elapsed = time.monotonic() - start
        report.steps.append(
            StepResult(name, passed=True, elapsed=elapsed, detail="" if value is None else str(value))
        )
        log.info("scenario.step_passed", elapsed=round(elapsed, 2))
        return value

    def run(self) -> ScenarioReport:
        """Run every step in order.

        Returns:
            Report with one passed StepResult per step.

        Raises:
            ScenarioFailedError: If a step fails; carries the partial report.
            ScenarioCancelledError: If the run was interrupted.
        """
        report = ScenarioReport(prefix=self.prefix, namespace=self.namespace)
        self._run_step(report, "create_log_sink", self.create_log_sink)
        self._run_step(report, "create_syslog_receiver", self.create_syslog_receiver)
        self._run_step(report, "wait_for_receiver_running", self.wait_for_receiver_running)
        self._run_step(report, "wait_for_forwarders_ready", self.wait_for_forwarders_ready)
        self._run_step(report, "emit_logs", self.emit_logs)
        observer_pod = self._run_step(report, "observe_log_count", self.observe_log_count)
        self._run_step(
            report,
            "assert_logs_received",
            lambda: self.assert_logs_received(observer_pod),
        )
        self._log.info("scenario.passed", steps=len(report.steps))
        return report


__all__ = [
    "EMITTER_IMAGE",
    "LOG_LINE_COUNT",
    "LogPipelineScenario",
    "METRICS_PORT",
    "OBSERVER_IMAGE",
    "RECEIVER_IMAGE",
    "SYSLOG_PORT",
    "ScenarioReport",
    "StepResult",
    "expected_count_line",
    "log_emitter_job",
    "log_observer_job",
    "log_sink_spec",
    "receiver_pod",
    "receiver_service",
]
