"""Main entry point for the logsink-e2e CLI.

Commands:
    logsink-e2e run: Run the log delivery scenario inside the test namespace
    logsink-e2e teardown: Delete a namespace kept by a failed run

Every option falls back to the matching ``LOGSINK_E2E_*`` environment
variable, then to the built-in default.

Example:
    $ logsink-e2e run --kubeconfig ~/.kube/config --cluster gke-e2e --verbose
    $ logsink-e2e teardown --namespace observability-tests
"""

from __future__ import annotations

import sys
from importlib.metadata import version as get_version
from typing import Any

import click
from pydantic import ValidationError

from logsink_e2e.cancellation import CancellationToken
from logsink_e2e.cli.utils import (
    ExitCode,
    error,
    error_exit,
    info,
    install_signal_handlers,
    success,
)
from logsink_e2e.client import ClusterClient
from logsink_e2e.config import E2EConfig
from logsink_e2e.errors import (
    LogSinkE2EError,
    ScenarioCancelledError,
    ScenarioFailedError,
    TeardownError,
)
from logsink_e2e.lifecycle import NamespaceFixture
from logsink_e2e.naming import generate_run_prefix
from logsink_e2e.scenario import LogPipelineScenario
from logsink_e2e.telemetry import configure_logging, configure_tracing


def _get_version() -> str:
    try:
        return get_version("logsink-e2e")
    except Exception:
        return "unknown"


def _load_config(**overrides: Any) -> E2EConfig:
    try:
        return E2EConfig.from_env(**overrides)
    except (ValidationError, ValueError) as e:
        error_exit(f"Invalid configuration: {e}", exit_code=ExitCode.USAGE_ERROR)


def _connection_options(func: Any) -> Any:
    func = click.option(
        "--namespace",
        default=None,
        help="Namespace owned by the run (default: observability-tests).",
    )(func)
    func = click.option(
        "--context",
        default=None,
        help="Kubeconfig context to use.",
    )(func)
    func = click.option(
        "--cluster",
        default=None,
        help="Cluster name override; picks the context pointing at it.",
    )(func)
    func = click.option(
        "--kubeconfig",
        "kubeconfig_path",
        default=None,
        type=click.Path(dir_okay=False),
        help="Path to kubeconfig (default: in-cluster, then ~/.kube/config).",
    )(func)
    return func


@click.group(
    name="logsink-e2e",
    help="End-to-end validation of a cluster log forwarding pipeline.",
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.version_option(version=_get_version(), prog_name="logsink-e2e")
def cli() -> None:
    """Root command group."""


@cli.command(name="run")
@_connection_options
@click.option("--prefix", default=None, help="Run prefix for object names (default: generated).")
@click.option("--timeout", type=float, default=None, help="Per-condition timeout in seconds.")
@click.option("--verbose", "-v", is_flag=True, help="Emit debug logs.")
@click.option(
    "--emit-metrics",
    is_flag=True,
    help="Export scenario spans through OpenTelemetry.",
)
@click.option(
    "--teardown-on-failure",
    is_flag=True,
    help="Delete the namespace even if the run fails (default: keep it).",
)
def run_command(
    kubeconfig_path: str | None,
    cluster: str | None,
    context: str | None,
    namespace: str | None,
    prefix: str | None,
    timeout: float | None,
    verbose: bool,
    emit_metrics: bool,
    teardown_on_failure: bool,
) -> None:
    """Create the namespace, run the scenario, tear down on success."""
    config = _load_config(
        kubeconfig_path=kubeconfig_path,
        cluster=cluster,
        context=context,
        namespace=namespace,
        prefix=prefix,
        # Unset flags fall back to the environment
        verbose=verbose or None,
        emit_metrics=emit_metrics or None,
        teardown_on_failure=teardown_on_failure or None,
    )
    if timeout is not None:
        config = config.model_copy(
            update={"polling": config.polling.model_copy(update={"timeout": timeout})}
        )

    configure_logging(verbose=config.verbose)
    configure_tracing(emit_metrics=config.emit_metrics)

    token = CancellationToken()
    restore_signals = install_signal_handlers(token)
    try:
        exit_code = _run(config, token)
    finally:
        restore_signals()
    sys.exit(exit_code)


def _run(config: E2EConfig, token: CancellationToken) -> ExitCode:
    prefix = config.prefix or generate_run_prefix()
    try:
        cluster = ClusterClient.from_config(config)
        fixture = NamespaceFixture.from_config(cluster, config, cancel_token=token)
        info(f"Running log pipeline scenario (namespace={config.namespace}, prefix={prefix})")
        with fixture:
            report = LogPipelineScenario(
                cluster,
                config,
                prefix=prefix,
                cancel_token=token,
            ).run()
    except ScenarioFailedError as e:
        if e.report is not None:
            click.echo(e.report.format(), err=True)
        error(str(e), step=e.step, namespace=config.namespace, prefix=prefix)
        if not config.teardown_on_failure:
            info(f"Namespace '{config.namespace}' kept for inspection")
        return ExitCode(e.exit_code)
    except ScenarioCancelledError as e:
        error(str(e), namespace=config.namespace)
        return ExitCode.INTERRUPTED
    except TeardownError as e:
        error(str(e))
        return ExitCode.TEARDOWN_ERROR
    except LogSinkE2EError as e:
        error(str(e))
        return ExitCode(e.exit_code)

    success(report.format())
    return ExitCode.SUCCESS


@cli.command(name="teardown")
@_connection_options
@click.option("--wait/--no-wait", default=False, help="Wait until the namespace is gone.")
def teardown_command(
    kubeconfig_path: str | None,
    cluster: str | None,
    context: str | None,
    namespace: str | None,
    wait: bool,
) -> None:
    """Delete the run namespace (e.g. one kept after a failed run)."""
    config = _load_config(
        kubeconfig_path=kubeconfig_path,
        cluster=cluster,
        context=context,
        namespace=namespace,
        wait_for_namespace_deletion=wait,
    )
    configure_logging(verbose=config.verbose)

    try:
        client = ClusterClient.from_config(config)
        NamespaceFixture.from_config(client, config).teardown()
    except TeardownError as e:
        error_exit(str(e), exit_code=ExitCode.TEARDOWN_ERROR)
    except LogSinkE2EError as e:
        error_exit(str(e), exit_code=e.exit_code)
    success(f"Namespace '{config.namespace}' deleted")


def main(argv: list[str] | None = None) -> None:
    """Console script entry point.

    Args:
        argv: Command-line arguments (uses sys.argv if None).
    """
    try:
        cli(args=argv, standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(ExitCode.USAGE_ERROR)
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(ExitCode.INTERRUPTED)


if __name__ == "__main__":
    main()
