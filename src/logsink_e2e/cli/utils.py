"""CLI utility functions and exit codes.

Errors go to stderr as plain text with a non-zero exit code so CI can gate
on the result of a run.

Example:
    from logsink_e2e.cli.utils import error_exit, ExitCode

    error_exit("Scenario failed", exit_code=ExitCode.SCENARIO_FAILED, step="emit_logs")
"""

from __future__ import annotations

import signal
import sys
from collections.abc import Callable
from enum import IntEnum
from typing import TYPE_CHECKING, Any

import click

if TYPE_CHECKING:
    from typing import NoReturn

    from logsink_e2e.cancellation import CancellationToken


class ExitCode(IntEnum):
    """Exit codes of the ``logsink-e2e`` command."""

    SUCCESS = 0
    """Every scenario step passed."""

    GENERAL_ERROR = 1
    """General error (catch-all for failures)."""

    USAGE_ERROR = 2
    """Invalid options or configuration."""

    SCENARIO_FAILED = 3
    """A scenario step or the final log assertion failed."""

    TIMEOUT = 4
    """A condition was not satisfied in time."""

    PROVISIONING_ERROR = 5
    """An object could not be created."""

    TEARDOWN_ERROR = 6
    """The namespace could not be deleted; the cluster needs attention."""

    INTERRUPTED = 130
    """The run was interrupted by SIGINT/SIGTERM."""


def error(message: str, **context: str | int | bool | None) -> None:
    """Print an error message to stderr.

    Example:
        error("Namespace deletion failed", namespace="observability-tests")
        # Output: Error: Namespace deletion failed (namespace=observability-tests)
    """
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items() if v is not None)
        full_message = f"Error: {message} ({context_str})"
    else:
        full_message = f"Error: {message}"

    click.echo(full_message, err=True)


def error_exit(
    message: str,
    exit_code: int = ExitCode.GENERAL_ERROR,
    **context: str | int | bool | None,
) -> NoReturn:
    """Print an error message to stderr and exit with a code.

    Raises:
        SystemExit: Always exits with the specified code.
    """
    error(message, **context)
    sys.exit(exit_code)


def info(message: str) -> None:
    """Print progress information to stderr."""
    click.echo(message, err=True)


def success(message: str) -> None:
    """Print a result to stdout."""
    click.echo(message)


def install_signal_handlers(
    token: CancellationToken,
    signals: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM),
) -> Callable[[], None]:
    """Route OS signals into the run's cancellation token.

    Args:
        token: Token cancelled with the signal name as reason.
        signals: Signals to intercept.

    Returns:
        Callable restoring the previous handlers.
    """
    previous: dict[signal.Signals, Any] = {}

    def handler(signum: int, frame: Any) -> None:  # noqa: ARG001
        token.cancel(signal.Signals(signum).name)

    for sig in signals:
        previous[sig] = signal.signal(sig, handler)

    def restore() -> None:
        for sig, old in previous.items():
            signal.signal(sig, old)

    return restore


__all__ = [
    "ExitCode",
    "error",
    "error_exit",
    "info",
    "install_signal_handlers",
    "success",
]
