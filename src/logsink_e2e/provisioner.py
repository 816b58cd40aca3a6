"""Idempotent creation of the scenario's workload objects.

Objects are declared as immutable ResourceDescriptor models and submitted
once. An AlreadyExists (409) answer counts as success so a run can resume
over objects left behind by an earlier, interrupted run. Objects are never
updated or patched; they disappear with the namespace.

Example:
    >>> provisioner = ResourceProvisioner(client, namespace="observability-tests")
    >>> provisioner.create(
    ...     ResourceDescriptor(
    ...         kind=ResourceKind.JOB,
    ...         name="e2e-log-emitter",
    ...         labels={"app": "e2e-log-emitter"},
    ...         image="ubuntu:xenial",
    ...         command=("bash", "-c", "echo hello"),
    ...         restart_policy="Never",
    ...     )
    ... )
    <ProvisionOutcome.CREATED: 'created'>
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal

import structlog
from kubernetes import client
from kubernetes.client.rest import ApiException
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from logsink_e2e.client import (
    LOG_SINK_GROUP,
    LOG_SINK_KINDS,
    LOG_SINK_VERSION,
    TRANSPORT_ERRORS,
    is_already_exists,
)
from logsink_e2e.errors import ProvisioningError
from logsink_e2e.naming import validate_name

if TYPE_CHECKING:
    from logsink_e2e.client import ClusterClient

logger = structlog.get_logger(__name__)


class ResourceKind(str, Enum):
    """Workload kinds the provisioner can create."""

    SERVICE = "Service"
    POD = "Pod"
    JOB = "Job"


class ProvisionOutcome(str, Enum):
    """Result of a successful create call."""

    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


class PortSpec(BaseModel):
    """A named port (service port or container port)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1, max_length=15)
    port: int = Field(ge=1, le=65535)


class ResourceDescriptor(BaseModel):
    """Declarative, immutable description of a Service, Pod or Job.

    Attributes:
        kind: Object kind.
        name: Object name (already prefixed by the caller).
        labels: Labels on the object (and on a Job's pod template).
        image: Container image. Required for Pod and Job.
        container_name: Container name. Defaults to the object name.
        command: Container command.
        env: Container environment variables, in declaration order.
        ports: Service ports for a Service, container ports otherwise.
        selector: Pod selector of a Service.
        restart_policy: Pod restart policy ("Never" for jobs).
        backoff_limit: Retries before a Job is marked failed. Jobs only.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: ResourceKind
    name: str
    labels: dict[str, str] = Field(default_factory=dict)
    image: str | None = None
    container_name: str | None = None
    command: tuple[str, ...] = ()
    env: dict[str, str] = Field(default_factory=dict)
    ports: tuple[PortSpec, ...] = ()
    selector: dict[str, str] = Field(default_factory=dict)
    restart_policy: Literal["Always", "OnFailure", "Never"] | None = None
    backoff_limit: int | None = Field(default=None, ge=0)

    @field_validator("name")
    @classmethod
    def validate_object_name(cls, v: str) -> str:
        """Object names must be DNS-1123 labels."""
        if not validate_name(v):
            msg = f"'{v}' is not a valid Kubernetes object name"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def check_kind_fields(self) -> ResourceDescriptor:
        """Workloads need an image; services need a selector, ports and a DNS-1035 name."""
        if self.kind in (ResourceKind.POD, ResourceKind.JOB) and not self.image:
            msg = f"{self.kind.value} '{self.name}' requires an image"
            raise ValueError(msg)
        if self.kind is ResourceKind.SERVICE and not (self.selector and self.ports):
            msg = f"Service '{self.name}' requires a selector and at least one port"
            raise ValueError(msg)
        if self.kind is ResourceKind.SERVICE and not self.name[0].isalpha():
            msg = f"Service name '{self.name}' must start with a letter"
            raise ValueError(msg)
        if self.backoff_limit is not None and self.kind is not ResourceKind.JOB:
            msg = f"backoff_limit applies to Jobs only, not {self.kind.value} '{self.name}'"
            raise ValueError(msg)
        return self


class LogSinkSpec(BaseModel):
    """Where the forwarding pipeline should deliver logs.

    Attributes:
        type: Delivery protocol (e.g., "syslog").
        host: Receiver host name.
        port: Receiver port.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: str = Field(default="syslog", min_length=1)
    host: str = Field(min_length=1)
    port: int = Field(ge=1, le=65535)


def _container(descriptor: ResourceDescriptor) -> client.V1Container:
    return client.V1Container(
        name=descriptor.container_name or descriptor.name,
        image=descriptor.image,
        command=list(descriptor.command) or None,
        env=[client.V1EnvVar(name=k, value=v) for k, v in descriptor.env.items()] or None,
        ports=[
            client.V1ContainerPort(name=p.name, container_port=p.port)
            for p in descriptor.ports
        ]
        or None,
    )


def _pod_spec(descriptor: ResourceDescriptor) -> client.V1PodSpec:
    return client.V1PodSpec(
        containers=[_container(descriptor)],
        restart_policy=descriptor.restart_policy,
    )


def build_body(descriptor: ResourceDescriptor) -> Any:
    """Translate a descriptor into the kubernetes client model object.

    Returns:
        V1Service, V1Pod or V1Job.
    """
    metadata = client.V1ObjectMeta(name=descriptor.name, labels=dict(descriptor.labels) or None)

    if descriptor.kind is ResourceKind.SERVICE:
        return client.V1Service(
            metadata=metadata,
            spec=client.V1ServiceSpec(
                ports=[client.V1ServicePort(name=p.name, port=p.port) for p in descriptor.ports],
                selector=dict(descriptor.selector),
            ),
        )

    if descriptor.kind is ResourceKind.POD:
        return client.V1Pod(metadata=metadata, spec=_pod_spec(descriptor))

    return client.V1Job(
        metadata=metadata,
        spec=client.V1JobSpec(
            backoff_limit=descriptor.backoff_limit,
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=dict(descriptor.labels) or None),
                spec=_pod_spec(descriptor),
            ),
        ),
    )


def build_log_sink_body(name: str, spec: LogSinkSpec, *, scope: str = "namespace") -> dict[str, Any]:
    """Build the custom object body of a LogSink / ClusterLogSink."""
    return {
        "apiVersion": f"{LOG_SINK_GROUP}/{LOG_SINK_VERSION}",
        "kind": LOG_SINK_KINDS[scope],
        "metadata": {"name": name},
        "spec": spec.model_dump(),
    }


class ResourceProvisioner:
    """Creates workload and log-sink objects in one namespace.

    Attributes:
        cluster: Cluster client used for submission.
        namespace: Target namespace; must be present before any create.
    """

    def __init__(self, cluster: ClusterClient, namespace: str) -> None:
        self.cluster = cluster
        self.namespace = namespace

    def create(self, descriptor: ResourceDescriptor) -> ProvisionOutcome:
        """Submit a workload object.

        Args:
            descriptor: What to create.

        Returns:
            CREATED, or ALREADY_EXISTS if the API server answered 409.

        Raises:
            ProvisioningError: On any other API failure.
        """
        body = build_body(descriptor)
        submit: dict[ResourceKind, Callable[[str, Any], Any]] = {
            ResourceKind.SERVICE: self.cluster.create_service,
            ResourceKind.POD: self.cluster.create_pod,
            ResourceKind.JOB: self.cluster.create_job,
        }
        return self._submit(
            descriptor.kind.value,
            descriptor.name,
            lambda: submit[descriptor.kind](self.namespace, body),
        )

    def create_log_sink(
        self,
        name: str,
        spec: LogSinkSpec,
        *,
        scope: str = "namespace",
    ) -> ProvisionOutcome:
        """Submit a LogSink (or ClusterLogSink) pointing at a receiver.

        Raises:
            ProvisioningError: On any API failure other than 409.
        """
        body = build_log_sink_body(name, spec, scope=scope)
        return self._submit(
            LOG_SINK_KINDS[scope],
            name,
            lambda: self.cluster.create_log_sink(self.namespace, body, scope=scope),
        )

    def _submit(self, kind: str, name: str, call: Callable[[], Any]) -> ProvisionOutcome:
        log = logger.bind(kind=kind, name=name, namespace=self.namespace)
        try:
            call()
        except ApiException as e:
            if is_already_exists(e):
                log.info("provisioner.already_exists")
                return ProvisionOutcome.ALREADY_EXISTS
            log.error("provisioner.create_failed", status=e.status, reason=e.reason)
            raise ProvisioningError(
                kind,
                name,
                namespace=self.namespace,
                status=e.status,
                reason=str(e.reason or e),
            ) from e
        except TRANSPORT_ERRORS as e:
            log.error("provisioner.create_failed", error=str(e))
            raise ProvisioningError(kind, name, namespace=self.namespace, reason=str(e)) from e
        log.info("provisioner.created")
        return ProvisionOutcome.CREATED


__all__ = [
    "LogSinkSpec",
    "PortSpec",
    "ProvisionOutcome",
    "ResourceDescriptor",
    "ResourceKind",
    "ResourceProvisioner",
    "build_body",
    "build_log_sink_body",
]
