"""
servicegraph - Distributed Tracing with OpenTelemetry

Startup tracing for the bootstrap sweep: every service resolution runs in its
own span, nested under its dependents, so a flame graph of the sweep shows
exactly which service held up startup.

Tracing is off unless enabled (``OTEL_TRACING_ENABLED=true``); until then the
OpenTelemetry API hands out no-op tracers and spans cost nothing.

Usage:
    from observability.tracing import setup_tracing, get_tracer, create_span

    setup_tracing(TracingConfig(enabled=True, console_export=True))

    with create_span("bootstrap", attributes={"manifest": "services.json"}):
        await container.initialize()
"""
from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional

from opentelemetry import trace
from opentelemetry.propagate import set_global_textmap
from opentelemetry.propagators.b3 import B3MultiFormat
from opentelemetry.propagators.composite import CompositePropagator
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)
from opentelemetry.sdk.trace.sampling import (
    ALWAYS_OFF,
    ALWAYS_ON,
    ParentBased,
    TraceIdRatioBased,
)
from opentelemetry.trace import SpanKind, Status, StatusCode
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

logger = logging.getLogger("servicegraph.tracing")

# Global state
_tracer_provider: Optional[TracerProvider] = None
_initialized: bool = False


@dataclass
class TracingConfig:
    """Configuration for OpenTelemetry tracing."""

    service_name: str = "servicegraph"
    service_version: str = "0.1.0"
    otlp_endpoint: Optional[str] = field(
        default_factory=lambda: os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    )
    enabled: bool = field(
        default_factory=lambda: os.getenv("OTEL_TRACING_ENABLED", "false").lower() == "true"
    )
    sample_rate: float = field(
        default_factory=lambda: float(os.getenv("OTEL_SAMPLE_RATE", "1.0"))
    )
    environment: str = field(
        default_factory=lambda: os.getenv("SERVICEGRAPH_ENV", "development")
    )
    console_export: bool = field(
        default_factory=lambda: os.getenv("OTEL_CONSOLE_EXPORT", "false").lower() == "true"
    )
    batch_export: bool = True

    extra_attributes: Dict[str, str] = field(default_factory=dict)


def setup_tracing(config: Optional[TracingConfig] = None) -> trace.TracerProvider:
    """
    Configure OpenTelemetry tracing.

    Returns the active tracer provider. With tracing disabled the global
    provider is left untouched, so the API's no-op tracer stays in effect.
    """
    global _tracer_provider, _initialized

    if _initialized and _tracer_provider:
        return _tracer_provider

    config = config or TracingConfig()

    if not config.enabled:
        _initialized = True
        return trace.get_tracer_provider()

    resource = Resource.create({
        SERVICE_NAME: config.service_name,
        SERVICE_VERSION: config.service_version,
        "deployment.environment": config.environment,
        **config.extra_attributes,
    })

    if config.sample_rate <= 0.0:
        sampler = ALWAYS_OFF
    elif config.sample_rate >= 1.0:
        sampler = ALWAYS_ON
    else:
        sampler = ParentBased(root=TraceIdRatioBased(config.sample_rate))

    _tracer_provider = TracerProvider(resource=resource, sampler=sampler)

    if config.otlp_endpoint:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        otlp_exporter = OTLPSpanExporter(endpoint=config.otlp_endpoint, insecure=True)
        if config.batch_export:
            processor = BatchSpanProcessor(otlp_exporter)
        else:
            processor = SimpleSpanProcessor(otlp_exporter)
        _tracer_provider.add_span_processor(processor)

    if config.console_export:
        _tracer_provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(_tracer_provider)
    set_global_textmap(
        CompositePropagator([TraceContextTextMapPropagator(), B3MultiFormat()])
    )

    _initialized = True
    logger.debug("Tracing configured for %s", config.service_name)

    return _tracer_provider


def get_tracer(name: str, version: str = "0.1.0") -> trace.Tracer:
    """Get a tracer from the global provider (no-op until tracing is set up)."""
    return trace.get_tracer(name, version)


def shutdown_tracing() -> None:
    """Flush pending spans. Call during application shutdown."""
    global _tracer_provider, _initialized
    if _tracer_provider is not None:
        _tracer_provider.shutdown()
    _initialized = False
    _tracer_provider = None


@contextmanager
def create_span(
    name: str,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: Optional[Dict[str, Any]] = None,
    tracer_name: str = "servicegraph",
) -> Iterator[trace.Span]:
    """
    Context manager for creating spans with automatic error recording.

    Example:
        >>> with create_span("container.initialize_service",
        ...                  attributes={"service.name": "HttpClient"}) as span:
        ...     instance = await build()
    """
    tracer = get_tracer(tracer_name)
    with tracer.start_as_current_span(
        name,
        kind=kind,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        if attributes:
            for key, value in attributes.items():
                span.set_attribute(key, value)
        try:
            yield span
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise
