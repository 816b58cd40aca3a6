"""Logging and tracing setup for the suite.

Scenario steps run inside OpenTelemetry spans; structlog output carries the
active trace and span ids so a failing step's log lines can be matched with
its span.

Example:
    >>> configure_logging(verbose=True, json_output=False)
    >>> configure_tracing(emit_metrics=False)
    >>> with step_span(get_tracer(), "emit_logs", prefix="e2e-") as span:
    ...     pass
"""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.trace import INVALID_SPAN_ID, INVALID_TRACE_ID, Status, StatusCode

if TYPE_CHECKING:
    from collections.abc import Iterator

TRACER_NAME = "logsink_e2e.scenario"

ATTR_STEP = "scenario.step"
ATTR_PREFIX = "scenario.prefix"
ATTR_NAMESPACE = "scenario.namespace"

# Type alias for structlog EventDict
EventDict = MutableMapping[str, Any]


def add_trace_context(
    logger: Any,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor injecting the active trace_id and span_id."""
    ctx = trace.get_current_span().get_span_context()
    if ctx.trace_id != INVALID_TRACE_ID and ctx.span_id != INVALID_SPAN_ID:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def configure_logging(verbose: bool = False, json_output: bool = False) -> None:
    """Configure structlog for the suite.

    Args:
        verbose: Emit DEBUG events (poll attempts) when True, INFO otherwise.
        json_output: Render JSON lines instead of the console format.
    """
    level = logging.DEBUG if verbose else logging.INFO
    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_trace_context,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def configure_tracing(emit_metrics: bool = False) -> TracerProvider | None:
    """Install an SDK tracer provider when span export is requested.

    Without ``emit_metrics`` the global no-op provider stays in place and
    spans cost nothing.

    Returns:
        The installed TracerProvider, or None.
    """
    if not emit_metrics:
        return None
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter(out=sys.stderr)))
    trace.set_tracer_provider(provider)
    return provider


def get_tracer() -> trace.Tracer:
    """Tracer for scenario steps."""
    return trace.get_tracer(TRACER_NAME)


@contextmanager
def step_span(
    tracer: trace.Tracer,
    step: str,
    *,
    prefix: str | None = None,
    namespace: str | None = None,
) -> Iterator[trace.Span]:
    """Context manager wrapping one scenario step in a span.

    Args:
        tracer: OpenTelemetry tracer instance.
        step: Step name (e.g., "emit_logs").
        prefix: Run prefix.
        namespace: Fixture namespace.

    Yields:
        The active span.
    """
    attributes: dict[str, Any] = {ATTR_STEP: step}
    if prefix is not None:
        attributes[ATTR_PREFIX] = prefix
    if namespace is not None:
        attributes[ATTR_NAMESPACE] = namespace

    with tracer.start_as_current_span(
        f"scenario.{step}",
        attributes=attributes,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
            span.set_status(Status(StatusCode.OK))
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, type(e).__name__))
            span.set_attribute("exception.type", type(e).__name__)
            span.set_attribute("exception.message", str(e))
            raise


__all__ = [
    "ATTR_NAMESPACE",
    "ATTR_PREFIX",
    "ATTR_STEP",
    "TRACER_NAME",
    "add_trace_context",
    "configure_logging",
    "configure_tracing",
    "get_tracer",
    "step_span",
]
