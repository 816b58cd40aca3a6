"""Unit tests for the logsink-e2e command line."""

from __future__ import annotations

from collections.abc import Iterator
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from logsink_e2e.cancellation import CancellationToken
from logsink_e2e.cli.main import cli, main
from logsink_e2e.cli.utils import ExitCode
from logsink_e2e.errors import ClusterConnectionError

NAMESPACE = "observability-tests"

FAST_ENV = {
    "LOGSINK_E2E_SETTLE_INTERVAL": "0",
    "LOGSINK_E2E_TIMEOUT": "0.5",
    "LOGSINK_E2E_INTERVAL": "0.05",
}


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def patched_client(fake_cluster) -> Iterator[MagicMock]:
    """Patch ClusterClient so every command talks to the fake cluster."""
    with patch("logsink_e2e.cli.main.ClusterClient") as mock_client:
        mock_client.from_config.return_value = fake_cluster
        yield mock_client


class TestRunCommand:
    """Tests for `logsink-e2e run`."""

    def test_success_tears_down(self, runner, patched_client, fake_cluster) -> None:
        result = runner.invoke(cli, ["run", "--prefix", "ci"], env=FAST_ENV)

        assert result.exit_code == ExitCode.SUCCESS, result.output
        assert "[PASS] assert_logs_received" in result.output
        assert fake_cluster.deleted_namespaces == [NAMESPACE]

    def test_options_reach_config(self, runner, patched_client) -> None:
        runner.invoke(
            cli,
            ["run", "--kubeconfig", "/tmp/kubeconfig", "--cluster", "gke-e2e", "--timeout", "1"],
            env=FAST_ENV,
        )

        config = patched_client.from_config.call_args.args[0]
        assert config.kubeconfig_path == "/tmp/kubeconfig"
        assert config.cluster == "gke-e2e"
        assert config.polling.timeout == pytest.approx(1.0)

    def test_failure_keeps_namespace(self, runner, patched_client, fake_cluster) -> None:
        fake_cluster.observer_output = "Logs Received: 4\n"

        result = runner.invoke(cli, ["run"], env=FAST_ENV)

        assert result.exit_code == ExitCode.SCENARIO_FAILED
        assert "Logs Received: 4" in result.output
        assert "kept for inspection" in result.output
        assert NAMESPACE in fake_cluster.namespaces

    def test_failure_with_teardown_on_failure(
        self, runner, patched_client, fake_cluster
    ) -> None:
        fake_cluster.observer_output = "Logs Received: 4\n"

        result = runner.invoke(cli, ["run", "--teardown-on-failure"], env=FAST_ENV)

        assert result.exit_code == ExitCode.SCENARIO_FAILED
        assert NAMESPACE not in fake_cluster.namespaces

    def test_timeout_exit_code(self, runner, patched_client, fake_cluster) -> None:
        fake_cluster.add_forwarders(ready=1, total=3)

        result = runner.invoke(cli, ["run"], env=FAST_ENV)

        assert result.exit_code == ExitCode.TIMEOUT
        assert "wait_for_forwarders_ready" in result.output

    def test_invalid_prefix_is_usage_error(self, runner, patched_client) -> None:
        result = runner.invoke(cli, ["run", "--prefix", "a" * 60], env=FAST_ENV)

        assert result.exit_code == ExitCode.USAGE_ERROR
        assert "Invalid configuration" in result.output
        patched_client.from_config.assert_not_called()

    def test_prefix_starting_with_digit_is_usage_error(self, runner, patched_client) -> None:
        result = runner.invoke(cli, ["run", "--prefix", "1run"], env=FAST_ENV)

        assert result.exit_code == ExitCode.USAGE_ERROR
        assert "start with a letter" in result.output
        patched_client.from_config.assert_not_called()

    def test_connection_error(self, runner, patched_client) -> None:
        patched_client.from_config.side_effect = ClusterConnectionError("no kubeconfig")

        result = runner.invoke(cli, ["run"], env=FAST_ENV)

        assert result.exit_code == ExitCode.GENERAL_ERROR
        assert "no kubeconfig" in result.output


class TestRunInterrupted:
    """Tests for `logsink-e2e run` when SIGINT/SIGTERM cancels the token."""

    @pytest.fixture
    def token(self) -> Iterator[CancellationToken]:
        token = CancellationToken()
        with patch("logsink_e2e.cli.main.CancellationToken", return_value=token):
            yield token

    def test_interrupt_exit_code(self, runner, patched_client, fake_cluster, token) -> None:
        fake_cluster.enforce_namespaces = True

        def interrupt(kind: str, body: object) -> None:
            if kind == "Service":
                token.cancel("SIGINT")

        fake_cluster.on_create = interrupt

        result = runner.invoke(cli, ["run"], env=FAST_ENV)

        assert result.exit_code == ExitCode.INTERRUPTED, result.output
        assert "Scenario cancelled: SIGINT" in result.output
        assert fake_cluster.deleted_namespaces == [NAMESPACE]

    def test_failed_teardown_after_interrupt(
        self, runner, patched_client, fake_cluster, token, api_exception
    ) -> None:
        """Test a namespace that cannot be deleted on interrupt is a teardown error."""

        def interrupt(kind: str, body: object) -> None:
            if kind == "LogSink":
                fake_cluster.errors["DeleteNamespace"] = api_exception(500, "etcdserver: timeout")
                token.cancel("SIGINT")

        fake_cluster.on_create = interrupt

        result = runner.invoke(cli, ["run"], env=FAST_ENV)

        assert result.exit_code == ExitCode.TEARDOWN_ERROR, result.output
        assert "Error deleting namespace 'observability-tests'" in result.output
        assert NAMESPACE in fake_cluster.namespaces


class TestTeardownCommand:
    """Tests for `logsink-e2e teardown`."""

    def test_deletes_namespace(self, runner, patched_client, fake_cluster) -> None:
        fake_cluster.namespaces.add(NAMESPACE)

        result = runner.invoke(cli, ["teardown"])

        assert result.exit_code == ExitCode.SUCCESS
        assert NAMESPACE not in fake_cluster.namespaces

    def test_missing_namespace_is_success(self, runner, patched_client) -> None:
        result = runner.invoke(cli, ["teardown", "--namespace", "logs-e2e"])

        assert result.exit_code == ExitCode.SUCCESS
        assert "'logs-e2e' deleted" in result.output

    def test_teardown_error(self, runner, patched_client, api_exception) -> None:
        failing = MagicMock()
        failing.delete_namespace.side_effect = api_exception(403, "Forbidden")
        patched_client.from_config.return_value = failing

        result = runner.invoke(cli, ["teardown"])

        assert result.exit_code == ExitCode.TEARDOWN_ERROR
        assert "Forbidden" in result.output

    def test_transport_error(self, runner, patched_client) -> None:
        failing = MagicMock()
        failing.delete_namespace.side_effect = ConnectionRefusedError(111, "Connection refused")
        patched_client.from_config.return_value = failing

        result = runner.invoke(cli, ["teardown"])

        assert result.exit_code == ExitCode.TEARDOWN_ERROR
        assert "Connection refused" in result.output


class TestMain:
    """Tests for the console script entry point."""

    def test_unknown_option(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["run", "--no-such-option"])
        assert exc_info.value.code == ExitCode.USAGE_ERROR

    def test_help(self, runner) -> None:
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "run" in result.output
        assert "teardown" in result.output
