"""
servicegraph - Unified Error Handling

Error hierarchy for the service container and its registry.

Features:
- Hierarchical exception classes with context preservation
- Error severity levels for prioritized handling
- Structured error context for debugging and reporting
- OpenTelemetry integration for error tracing
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode


class ErrorSeverity(Enum):
    """Error severity levels for prioritized handling."""

    DEBUG = "debug"      # Non-critical, informational
    INFO = "info"        # Minor issue, operation continues
    WARNING = "warning"  # Potential problem, degraded operation
    ERROR = "error"      # Significant failure, operation failed
    CRITICAL = "critical"  # Startup-level failure, nothing should run
    FATAL = "fatal"      # Unrecoverable


@dataclass
class ErrorContext:
    """Structured context for error debugging and tracing."""

    operation: str
    component: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    trace_id: Optional[str] = None
    span_id: Optional[str] = None
    service_name: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary for serialization."""
        return {
            "operation": self.operation,
            "component": self.component,
            "timestamp": self.timestamp.isoformat(),
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "service_name": self.service_name,
            "metadata": self.metadata,
            "stack_trace": self.stack_trace,
        }

    @classmethod
    def from_current_span(
        cls,
        operation: str,
        component: str,
        **kwargs: Any
    ) -> "ErrorContext":
        """Create context from current OpenTelemetry span."""
        span = trace.get_current_span()
        trace_id = None
        span_id = None

        if span and span.is_recording():
            ctx = span.get_span_context()
            if ctx.is_valid:
                trace_id = format(ctx.trace_id, "032x")
                span_id = format(ctx.span_id, "016x")

        return cls(
            operation=operation,
            component=component,
            trace_id=trace_id,
            span_id=span_id,
            stack_trace=traceback.format_exc(),
            **kwargs
        )


class ContainerError(Exception):
    """
    Base exception for all container and registry errors.

    Provides:
    - Structured error context
    - Severity level
    - Chained exception support
    - OpenTelemetry span recording
    """

    default_severity: ErrorSeverity = ErrorSeverity.ERROR
    error_code: str = "CONTAINER_ERROR"

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        severity: Optional[ErrorSeverity] = None,
        cause: Optional[BaseException] = None,
        recoverable: bool = False,
        suggestions: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context
        self.severity = severity or self.default_severity
        self.cause = cause
        self.recoverable = recoverable
        self.suggestions = suggestions or []
        self.timestamp = datetime.now(timezone.utc)
        # Set once the error has been handed to an ErrorReporter
        self.reported = False

        self._record_to_span()

    def _record_to_span(self) -> None:
        """Record exception to current OpenTelemetry span."""
        span = trace.get_current_span()
        if span and span.is_recording():
            span.set_status(Status(StatusCode.ERROR, self.message))
            span.record_exception(self)
            span.set_attribute("error.code", self.error_code)
            span.set_attribute("error.severity", self.severity.value)
            span.set_attribute("error.recoverable", self.recoverable)
            if self.context:
                span.set_attribute("error.component", self.context.component)
                span.set_attribute("error.operation", self.context.operation)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for reporting."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "recoverable": self.recoverable,
            "suggestions": self.suggestions,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context.to_dict() if self.context else None,
            "cause": str(self.cause) if self.cause else None,
        }

    def __str__(self) -> str:
        parts = [f"[{self.error_code}] {self.message}"]
        if self.context:
            parts.append(f" (component: {self.context.component})")
        if self.cause:
            parts.append(f" [caused by: {self.cause}]")
        return "".join(parts)

    def with_context(self, **kwargs: Any) -> "ContainerError":
        """Add additional context to the error."""
        if self.context:
            self.context.metadata.update(kwargs)
        else:
            self.context = ErrorContext(
                operation="unknown",
                component="unknown",
                metadata=kwargs
            )
        return self


class RegistryUnavailableError(ContainerError):
    """The container was asked to bootstrap without a registry."""

    error_code = "REGISTRY_UNAVAILABLE"
    default_severity = ErrorSeverity.CRITICAL


class RegistryValidationError(ContainerError):
    """One or more descriptors failed validation."""

    error_code = "REGISTRY_VALIDATION_ERROR"
    default_severity = ErrorSeverity.CRITICAL

    def __init__(self, errors: Sequence[str], **kwargs: Any):
        self.errors = list(errors)
        super().__init__(
            f"Registry validation failed: {', '.join(self.errors)}",
            **kwargs,
        )


class InvalidDescriptorError(ContainerError):
    """A descriptor is missing required fields."""

    error_code = "INVALID_DESCRIPTOR"

    def __init__(self, message: str, service_name: Optional[str] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.service_name = service_name


class DuplicateServiceError(ContainerError):
    """A service name was registered twice."""

    error_code = "DUPLICATE_SERVICE"

    def __init__(self, service_name: str, **kwargs: Any):
        super().__init__(f"Service {service_name} already registered", **kwargs)
        self.service_name = service_name


class ImplementationNotFoundError(ContainerError):
    """An implementation import path could not be resolved."""

    error_code = "IMPLEMENTATION_NOT_FOUND"

    def __init__(self, service_name: str, import_path: str, **kwargs: Any):
        super().__init__(
            f"Service {service_name}: implementation {import_path} not found",
            **kwargs,
        )
        self.service_name = service_name
        self.import_path = import_path


class CircularDependencyError(ContainerError):
    """Resolution re-entered a service that is already being resolved."""

    error_code = "CIRCULAR_DEPENDENCY"
    default_severity = ErrorSeverity.CRITICAL

    def __init__(
        self,
        service_name: str,
        cycle: Optional[Sequence[str]] = None,
        **kwargs: Any,
    ):
        self.service_name = service_name
        self.cycle = list(cycle) if cycle else []
        message = f"Circular dependency detected while initializing {service_name}"
        if self.cycle:
            message += f" ({' -> '.join(self.cycle)})"
        super().__init__(message, **kwargs)


class ServiceNotFoundError(ContainerError):
    """A name was looked up that the registry does not know."""

    error_code = "SERVICE_NOT_FOUND"

    def __init__(self, service_name: str, **kwargs: Any):
        super().__init__(f"Service {service_name} not found in registry", **kwargs)
        self.service_name = service_name


class NotAutoInitError(ContainerError):
    """Lazy lookup of a service that requires explicit initialization."""

    error_code = "NOT_AUTO_INIT"

    def __init__(self, service_name: str, **kwargs: Any):
        super().__init__(
            f"Service {service_name} is not auto-initialized. "
            "Call initialize_service() explicitly.",
            **kwargs,
        )
        self.service_name = service_name


class NotYetInitializedError(ContainerError):
    """Synchronous lookup of a service that is not ready yet."""

    error_code = "NOT_YET_INITIALIZED"
    default_severity = ErrorSeverity.WARNING

    def __init__(self, service_name: str, **kwargs: Any):
        super().__init__(f"Service {service_name} not initialized yet", **kwargs)
        self.service_name = service_name


class InstantiationError(ContainerError):
    """Construction or the initialize hook of a service raised."""

    error_code = "INSTANTIATION_ERROR"

    def __init__(self, service_name: str, cause: BaseException, **kwargs: Any):
        super().__init__(f"Failed to initialize {service_name}", cause=cause, **kwargs)
        self.service_name = service_name


class ManifestError(ContainerError):
    """A service manifest could not be read or does not describe valid services."""

    error_code = "MANIFEST_ERROR"
    default_severity = ErrorSeverity.CRITICAL

    def __init__(self, message: str, path: Optional[str] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.path = path
