"""logsink-e2e: end-to-end validation of a cluster log forwarding pipeline.

A run creates a LogSink pointing at a syslog receiver, emits a known number
of log lines from a job and checks that the receiver counted every one of
them, all inside a namespace owned by the run.

Example:
    >>> from logsink_e2e import E2EConfig, LogPipelineScenario, NamespaceFixture
    >>> config = E2EConfig(prefix="ci")
    >>> with NamespaceFixture.from_config(cluster, config):
    ...     report = LogPipelineScenario(cluster, config).run()
"""

from __future__ import annotations

__version__ = "0.1.0"
__all__ = [
    "CancellationToken",
    "ClusterClient",
    "E2EConfig",
    "LogPipelineScenario",
    "NamespaceFixture",
]


# Lazy imports keep `--help` fast (the kubernetes client is heavy)
def __getattr__(name: str):
    """Lazy import of suite components."""
    if name == "CancellationToken":
        from logsink_e2e.cancellation import CancellationToken
        return CancellationToken
    if name == "ClusterClient":
        from logsink_e2e.client import ClusterClient
        return ClusterClient
    if name == "E2EConfig":
        from logsink_e2e.config import E2EConfig
        return E2EConfig
    if name == "LogPipelineScenario":
        from logsink_e2e.scenario import LogPipelineScenario
        return LogPipelineScenario
    if name == "NamespaceFixture":
        from logsink_e2e.lifecycle import NamespaceFixture
        return NamespaceFixture
    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
