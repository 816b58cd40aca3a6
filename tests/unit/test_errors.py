"""Unit tests for the exception hierarchy."""

from __future__ import annotations

import pytest

from logsink_e2e.errors import (
    ClusterConnectionError,
    LogAssertionError,
    LogSinkE2EError,
    PodFailedError,
    PollingTimeoutError,
    PredicateError,
    ProvisioningError,
    ScenarioCancelledError,
    ScenarioFailedError,
    TeardownError,
)


class TestErrorHierarchy:
    """Test every error derives from LogSinkE2EError."""

    @pytest.mark.parametrize(
        "error",
        [
            ClusterConnectionError("no config"),
            ProvisioningError("Pod", "p"),
            PollingTimeoutError("x", 1.0),
            PredicateError("x", ValueError("bad")),
            PodFailedError("t-log-emitter", "t-log-emitter-x7k2p", "Succeeded"),
            LogAssertionError("Logs Received: 10", ""),
            ScenarioFailedError("emit_logs", RuntimeError("boom")),
            ScenarioCancelledError(),
            TeardownError("ns"),
        ],
    )
    def test_base_class(self, error: Exception) -> None:
        assert isinstance(error, LogSinkE2EError)

    def test_timeout_is_builtin_timeout(self) -> None:
        with pytest.raises(TimeoutError):
            raise PollingTimeoutError("receiver running", 5.0)

    def test_log_assertion_is_assertion(self) -> None:
        assert isinstance(LogAssertionError("a", "b"), AssertionError)


class TestErrorMessages:
    """Tests for error attributes and messages."""

    def test_provisioning_error(self) -> None:
        error = ProvisioningError(
            "Job", "t-log-emitter", namespace="observability-tests", status=500, reason="boom"
        )
        assert str(error) == (
            "Failed to create Job 't-log-emitter' in namespace "
            "'observability-tests' (status 500): boom"
        )
        assert error.exit_code == 5

    def test_polling_timeout_message(self) -> None:
        error = PollingTimeoutError(
            "receiver running",
            30.0,
            ConnectionError("refused"),
            selector="app=t-syslog-receiver",
            namespace="observability-tests",
            elapsed=30.2,
            attempts=31,
            last_observed=0,
        )
        message = str(error)
        assert "receiver running after 30.2s" in message
        assert "selector='app=t-syslog-receiver'" in message
        assert "last snapshot: 0 object(s)" in message
        assert "last error: refused" in message
        assert error.exit_code == 4

    def test_elapsed_defaults_to_timeout(self) -> None:
        assert PollingTimeoutError("x", 12.0).elapsed == pytest.approx(12.0)

    def test_log_assertion_carries_output(self) -> None:
        error = LogAssertionError("Logs Received: 10", "Logs Received: 9\n")
        assert error.output == "Logs Received: 9\n"
        assert "Logs Received: 9" in str(error)

    def test_scenario_failed_takes_cause_exit_code(self) -> None:
        """Test a timeout inside a step keeps the timeout exit code."""
        error = ScenarioFailedError("emit_logs", PollingTimeoutError("x", 1.0))
        assert error.exit_code == 4
        assert error.step == "emit_logs"
        assert str(error).startswith("Step 'emit_logs' failed:")

    def test_scenario_failed_default_exit_code(self) -> None:
        assert ScenarioFailedError("emit_logs", RuntimeError("x")).exit_code == 3

    def test_pod_failed_message(self) -> None:
        error = PodFailedError("t-log-emitter", "t-log-emitter-x7k2p", "Succeeded")
        assert str(error) == (
            "Pod 't-log-emitter-x7k2p' (app=t-log-emitter) failed before reaching phase Succeeded"
        )

    def test_predicate_error_takes_cause_exit_code(self) -> None:
        """Test a failed pod seen by a condition is reported as a scenario failure."""
        cause = PodFailedError("t-log-emitter", "t-log-emitter-x7k2p", "Succeeded")
        assert PredicateError("pod_in_phase", cause).exit_code == 3
        assert ScenarioFailedError("emit_logs", PredicateError("x", cause)).exit_code == 3
        assert PredicateError("x", ValueError("bad")).exit_code == 1

    def test_cancelled(self) -> None:
        assert str(ScenarioCancelledError("SIGINT")) == "Scenario cancelled: SIGINT"
        assert str(ScenarioCancelledError()) == "Scenario cancelled"
        assert ScenarioCancelledError.exit_code == 130

    def test_teardown(self) -> None:
        error = TeardownError("observability-tests", "Forbidden")
        assert str(error) == "Error deleting namespace 'observability-tests': Forbidden"
        assert error.exit_code == 6
