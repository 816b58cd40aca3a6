"""Command-line interface for the log pipeline end-to-end suite.

Commands:
    logsink-e2e run: Run the scenario in a fresh (or adopted) namespace
    logsink-e2e teardown: Delete the namespace left by a failed run

Exit Codes:
    0: Success
    1: General error
    2: Usage error (invalid options or configuration)
    3: Scenario step failed
    4: Condition timed out
    5: Provisioning error
    6: Teardown error
    130: Interrupted
"""

from __future__ import annotations

from logsink_e2e.cli.main import cli, main
from logsink_e2e.cli.utils import ExitCode, error, error_exit, success

__all__ = ["ExitCode", "cli", "error", "error_exit", "main", "success"]
