"""E2E test configuration and fixtures.

These tests run the log pipeline scenario against a live cluster that has
the log sink controller and the forwarder daemonset installed. They are
deselected by default; run them with ``pytest -m e2e``.

Configuration comes from the ``LOGSINK_E2E_*`` environment variables (see
E2EConfig.from_env). The namespace is created once per session, deleted on
success and kept when any test failed, unless
``LOGSINK_E2E_TEARDOWN_ON_FAILURE`` is set.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest

from logsink_e2e.cancellation import CancellationToken
from logsink_e2e.cli.utils import install_signal_handlers
from logsink_e2e.client import ClusterClient
from logsink_e2e.config import E2EConfig
from logsink_e2e.errors import ClusterConnectionError
from logsink_e2e.lifecycle import NamespaceFixture
from logsink_e2e.telemetry import configure_logging


@pytest.fixture(scope="session")
def e2e_config() -> E2EConfig:
    """Suite configuration read from the environment."""
    config = E2EConfig.from_env()
    configure_logging(verbose=config.verbose)
    return config


@pytest.fixture(scope="session")
def cluster(e2e_config: E2EConfig) -> ClusterClient:
    """Client for the cluster under test."""
    try:
        return ClusterClient.from_config(e2e_config)
    except ClusterConnectionError as e:
        pytest.skip(f"No cluster available: {e}")


@pytest.fixture(scope="session")
def cancel_token() -> Generator[CancellationToken, None, None]:
    """Token cancelled by SIGINT/SIGTERM for the whole session."""
    token = CancellationToken()
    restore = install_signal_handlers(token)
    yield token
    restore()


@pytest.fixture(scope="session")
def test_namespace(
    request: pytest.FixtureRequest,
    cluster: ClusterClient,
    e2e_config: E2EConfig,
    cancel_token: CancellationToken,
) -> Generator[str, None, None]:
    """Namespace owned by the session.

    Yields:
        Name of the namespace, present for the whole session.
    """
    fixture = NamespaceFixture.from_config(cluster, e2e_config, cancel_token=cancel_token)
    fixture.setup()
    yield fixture.namespace
    fixture.finish(succeeded=request.session.testsfailed == 0)
