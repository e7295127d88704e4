"""
servicegraph - Error Reporting

The container forwards every failure to a single injected ``ErrorReporter``
before re-raising it. Tags are structured: ``component``, ``service`` and
``action`` (``initialize``, ``destroy``, ``health_check``...).

Implementations:
- LoggingErrorReporter: structured log line per failure (default)
- SpanErrorReporter: records the failure on the current OpenTelemetry span
- CompositeErrorReporter: fans out to several reporters
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, runtime_checkable

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from core.errors import ContainerError
from observability.logging import get_logger

Tags = Mapping[str, Any]


@runtime_checkable
class ErrorReporter(Protocol):
    """Telemetry sink for container failures."""

    def report(self, error: BaseException, tags: Tags) -> None:
        ...


class LoggingErrorReporter:
    """Report failures as structured error log events."""

    def __init__(self, logger_name: str = "servicegraph.errors"):
        self._logger = get_logger(logger_name)

    def report(self, error: BaseException, tags: Tags) -> None:
        details: Dict[str, Any] = {}
        if isinstance(error, ContainerError):
            details["error_code"] = error.error_code
            details["severity"] = error.severity.value
            if error.cause is not None:
                details["cause"] = repr(error.cause)
        self._logger.error(
            "Error reported",
            error=str(error),
            error_type=type(error).__name__,
            **details,
            **dict(tags),
        )


class SpanErrorReporter:
    """Attach failures to the active span as exception events."""

    def report(self, error: BaseException, tags: Tags) -> None:
        span = trace.get_current_span()
        if not span.is_recording():
            return
        span.record_exception(
            error,
            attributes={f"tag.{key}": str(value) for key, value in tags.items()},
        )
        span.set_status(Status(StatusCode.ERROR, str(error)))


class CompositeErrorReporter:
    """Forward each failure to every wrapped reporter."""

    def __init__(self, reporters: Optional[Iterable[ErrorReporter]] = None):
        self._reporters: List[ErrorReporter] = list(reporters or [])
        self._logger = get_logger("servicegraph.errors")

    def add(self, reporter: ErrorReporter) -> "CompositeErrorReporter":
        self._reporters.append(reporter)
        return self

    def report(self, error: BaseException, tags: Tags) -> None:
        for reporter in self._reporters:
            try:
                reporter.report(error, tags)
            except Exception as e:
                # A broken sink must never replace the error being reported
                self._logger.warning(
                    "Error reporter failed",
                    reporter=type(reporter).__name__,
                    error=e,
                )


def default_reporter() -> ErrorReporter:
    return CompositeErrorReporter([LoggingErrorReporter(), SpanErrorReporter()])
