"""
servicegraph - Structured Logging with Trace Context

Integrates structlog with OpenTelemetry trace context propagation, so every
container log line (service registered, service initialized, teardown...)
carries trace_id and span_id for correlation with startup traces.

Features:
- Structured JSON logging for log aggregation
- Automatic trace context injection (trace_id, span_id)
- Configurable log levels and output formats
- Context binding for per-sweep fields

Usage:
    from observability.logging import setup_logging, get_logger

    setup_logging(LoggingConfig(level="INFO", json_format=True))

    logger = get_logger(__name__)
    logger.info("Service initialized", service="HttpClient", duration_ms=4.2)
"""
from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import structlog
from structlog.types import EventDict, WrappedLogger

# Global state
_configured: bool = False


@dataclass
class LoggingConfig:
    """Configuration for structured logging."""

    service_name: str = "servicegraph"
    level: str = field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper()
    )
    json_format: bool = field(
        default_factory=lambda: os.getenv("LOG_FORMAT", "console").lower() == "json"
    )
    enable_trace_context: bool = True
    log_to_console: bool = True
    log_to_file: bool = field(
        default_factory=lambda: os.getenv("LOG_TO_FILE", "false").lower() == "true"
    )
    log_file_path: Path = field(
        default_factory=lambda: Path(os.getenv("LOG_FILE", "./logs/servicegraph.log"))
    )
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5
    include_timestamp: bool = True
    environment: str = field(
        default_factory=lambda: os.getenv("SERVICEGRAPH_ENV", "development")
    )
    # structlog.testing.capture_logs only sees loggers that were not cached
    cache_logger_on_first_use: bool = True


def add_trace_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add trace_id and span_id from the current OpenTelemetry span."""
    from opentelemetry import trace

    span = trace.get_current_span()
    if span and span.is_recording():
        ctx = span.get_span_context()
        if ctx.is_valid:
            event_dict["trace_id"] = format(ctx.trace_id, "032x")
            event_dict["span_id"] = format(ctx.span_id, "016x")

    return event_dict


def add_service_context(
    service_name: str,
    environment: str,
) -> structlog.types.Processor:
    """Create a processor that adds service context to all log events."""

    def processor(
        logger: WrappedLogger,
        method_name: str,
        event_dict: EventDict,
    ) -> EventDict:
        event_dict["app"] = service_name
        event_dict["environment"] = environment
        return event_dict

    return processor


def add_timestamp(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add ISO8601 timestamp."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def format_exception(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Flatten a bare exception passed as ``error=`` into type and message."""
    error = event_dict.get("error")
    if isinstance(error, BaseException):
        event_dict["error"] = str(error)
        event_dict["error_type"] = type(error).__name__
    return event_dict


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """
    Configure structlog with OpenTelemetry trace context integration.

    Args:
        config: Logging configuration. Uses defaults if not provided.
    """
    global _configured

    if _configured:
        return

    config = config or LoggingConfig()

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_service_context(config.service_name, config.environment),
    ]

    if config.include_timestamp:
        processors.append(add_timestamp)

    if config.enable_trace_context:
        processors.append(add_trace_context)

    processors.extend([
        format_exception,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ])

    if config.json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=config.cache_logger_on_first_use,
    )

    _configure_stdlib_logging(config)

    _configured = True


def _configure_stdlib_logging(config: LoggingConfig) -> None:
    """Configure Python standard library logging."""
    level = getattr(logging, config.level, logging.INFO)
    handlers: list[logging.Handler] = []

    # structlog has already rendered the event; stdlib only forwards it
    if config.log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        handlers.append(console_handler)

    if config.log_to_file:
        from logging.handlers import RotatingFileHandler

        config.log_file_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            config.log_file_path,
            maxBytes=config.max_file_size,
            backupCount=config.backup_count,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    for handler in handlers:
        root_logger.addHandler(handler)

    logging.getLogger("opentelemetry").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structlog logger instance.

    Args:
        name: Logger name, typically a dotted ``servicegraph.*`` name

    Example:
        >>> logger = get_logger("servicegraph.container")
        >>> logger.info("Service initialized", service="Logger")
    """
    if not _configured:
        setup_logging()

    return structlog.get_logger(name)


def set_level(level: str) -> None:
    """Change the level of the root logger and its handlers after setup."""
    numeric = getattr(logging, level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric)
    for handler in root_logger.handlers:
        handler.setLevel(numeric)


def shutdown_logging() -> None:
    """Flush and close handlers; the next ``get_logger`` reconfigures."""
    global _configured

    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        handler.flush()
        handler.close()

    _configured = False


class LogContext:
    """
    Context manager for adding contextual information to all logs.

    Example:
        >>> with LogContext(sweep_id="a1b2"):
        ...     logger.info("Bootstrap started")
    """

    def __init__(self, **kwargs: Any):
        self.context = kwargs

    def __enter__(self) -> "LogContext":
        structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, *args: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self.context.keys())

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, *args: Any) -> None:
        self.__exit__(*args)


def bind_context(**kwargs: Any) -> None:
    """Bind contextual variables to all subsequent log messages."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove contextual variables from log context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound contextual variables."""
    structlog.contextvars.clear_contextvars()
