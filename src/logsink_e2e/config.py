"""Configuration model for the log pipeline end-to-end suite.

Example:
    >>> from logsink_e2e.config import E2EConfig
    >>> config = E2EConfig(prefix="CI_Run")
    >>> config.prefix
    'ci-run-'
    >>> config.namespace
    'observability-tests'
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from logsink_e2e.naming import normalize_prefix
from logsink_e2e.polling import PollingConfig

ENV_PREFIX = "LOGSINK_E2E_"
_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


class E2EConfig(BaseModel):
    """Configuration for one run of the log pipeline scenario.

    Attributes:
        namespace: Namespace owned by the fixture for the whole run.
        forwarder_namespace: Namespace where the forwarder daemonset runs.
        forwarder_app: ``app`` label of the forwarder pods.
        kubeconfig_path: Path to kubeconfig file. None uses in-cluster config,
            then the default kubeconfig.
        cluster: Cluster name override; selects the kubeconfig context that
            points at this cluster.
        context: Kubeconfig context to use. None uses current context.
        prefix: Run-scoped prefix for object names and selectors.
        sink_type: Delivery protocol written to the log sink.
        sink_scope: "namespace" creates a LogSink, "cluster" a ClusterLogSink.
        settle_interval: Seconds given to the sink controller before waiting
            for forwarders.
        polling: Timeout and interval for every condition wait.
        teardown_on_failure: Delete the namespace even when the run failed.
            Off by default so failed state can be inspected.
        wait_for_namespace_deletion: Block teardown until the namespace is gone.
        namespace_deletion_timeout: Budget for that wait in seconds.
        verbose: Emit debug logs.
        emit_metrics: Export scenario spans through OpenTelemetry.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    namespace: str = Field(
        default="observability-tests",
        min_length=1,
        max_length=63,
        pattern=r"^[a-z0-9][a-z0-9-]*[a-z0-9]$|^[a-z0-9]$",
        description="Kubernetes namespace owned by the test fixture",
    )
    forwarder_namespace: str = Field(
        default="knative-observability",
        min_length=1,
        max_length=63,
        pattern=r"^[a-z0-9][a-z0-9-]*[a-z0-9]$|^[a-z0-9]$",
        description="Namespace of the log forwarder daemonset",
    )
    forwarder_app: str = Field(
        default="fluent-bit-ds",
        min_length=1,
        description="app label of the log forwarder pods",
    )
    kubeconfig_path: str | None = Field(
        default=None,
        description="Path to kubeconfig file. None uses in-cluster config.",
    )
    cluster: str | None = Field(
        default=None,
        description="Cluster name override",
    )
    context: str | None = Field(
        default=None,
        description="Kubeconfig context to use. None uses current context.",
    )
    prefix: str = Field(
        default="",
        description="Run-scoped prefix for object names",
    )
    sink_type: str = Field(default="syslog", min_length=1)
    sink_scope: Literal["namespace", "cluster"] = "namespace"
    settle_interval: float = Field(default=5.0, ge=0.0)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    teardown_on_failure: bool = False
    wait_for_namespace_deletion: bool = False
    namespace_deletion_timeout: float = Field(default=120.0, ge=0.0)
    verbose: bool = False
    emit_metrics: bool = False

    @field_validator("kubeconfig_path")
    @classmethod
    def expand_kubeconfig_path(cls, v: str | None) -> str | None:
        """Expand ~ in kubeconfig path."""
        if v is None:
            return None
        return str(Path(v).expanduser())

    @field_validator("prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        """Normalize the run prefix so prefixed names stay DNS-1123 labels."""
        return normalize_prefix(v)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> E2EConfig:
        """Build a configuration from ``LOGSINK_E2E_*`` environment variables.

        ``KUBECONFIG`` is honoured when ``LOGSINK_E2E_KUBECONFIG`` is unset.
        Keyword overrides win over the environment; None overrides are ignored.

        Args:
            environ: Mapping to read instead of os.environ.
            **overrides: Field values taking precedence over the environment.

        Returns:
            Validated E2EConfig.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}

        for field_name in (
            "namespace",
            "forwarder_namespace",
            "forwarder_app",
            "cluster",
            "context",
            "prefix",
            "sink_type",
            "sink_scope",
        ):
            raw = env.get(f"{ENV_PREFIX}{field_name.upper()}")
            if raw:
                values[field_name] = raw

        kubeconfig = env.get(f"{ENV_PREFIX}KUBECONFIG") or env.get("KUBECONFIG")
        if kubeconfig:
            # KUBECONFIG may list several files; the first one is used
            values["kubeconfig_path"] = kubeconfig.split(os.pathsep)[0]

        for field_name in (
            "teardown_on_failure",
            "wait_for_namespace_deletion",
            "verbose",
            "emit_metrics",
        ):
            raw = env.get(f"{ENV_PREFIX}{field_name.upper()}")
            if raw is not None:
                values[field_name] = raw.strip().lower() in _TRUE_VALUES

        settle = env.get(f"{ENV_PREFIX}SETTLE_INTERVAL")
        if settle:
            values["settle_interval"] = float(settle)

        polling: dict[str, float] = {}
        timeout = env.get(f"{ENV_PREFIX}TIMEOUT")
        if timeout:
            polling["timeout"] = float(timeout)
        interval = env.get(f"{ENV_PREFIX}INTERVAL")
        if interval:
            polling["interval"] = float(interval)
        if polling:
            values["polling"] = PollingConfig(**polling)

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


__all__ = ["ENV_PREFIX", "E2EConfig"]
