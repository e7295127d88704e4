"""
servicegraph - Observability Package

Structured logging, startup tracing and error reporting for the container.

Components:
- logging: structlog integration with trace context propagation
- tracing: OpenTelemetry spans around the bootstrap sweep
- reporting: ErrorReporter sinks the container forwards failures to

Usage:
    from observability import setup_observability, get_logger

    # Initialize at application startup
    setup_observability()

    logger = get_logger("servicegraph.app")
"""
from typing import Optional

from .logging import (
    LogContext,
    LoggingConfig,
    bind_context,
    clear_context,
    get_logger,
    set_level,
    setup_logging,
    shutdown_logging,
    unbind_context,
)
from .reporting import (
    CompositeErrorReporter,
    ErrorReporter,
    LoggingErrorReporter,
    SpanErrorReporter,
    default_reporter,
)
from .tracing import (
    TracingConfig,
    create_span,
    get_tracer,
    setup_tracing,
    shutdown_tracing,
)


def setup_observability(
    logging_config: Optional[LoggingConfig] = None,
    tracing_config: Optional[TracingConfig] = None,
) -> None:
    """Configure logging and tracing in one call; tracing stays off unless enabled."""
    setup_logging(logging_config)
    setup_tracing(tracing_config)


def shutdown_observability() -> None:
    """Flush spans and log handlers."""
    shutdown_tracing()
    shutdown_logging()


__all__ = [
    # Setup
    "setup_observability",
    "shutdown_observability",
    # Logging
    "LogContext",
    "LoggingConfig",
    "bind_context",
    "clear_context",
    "get_logger",
    "set_level",
    "setup_logging",
    "shutdown_logging",
    "unbind_context",
    # Tracing
    "TracingConfig",
    "create_span",
    "get_tracer",
    "setup_tracing",
    "shutdown_tracing",
    # Reporting
    "CompositeErrorReporter",
    "ErrorReporter",
    "LoggingErrorReporter",
    "SpanErrorReporter",
    "default_reporter",
]
