"""
servicegraph - Application Bootstrap

Wraps a registry and its container in an application lifecycle:

    CREATED -> STARTING -> RUNNING -> STOPPING -> STOPPED
                  |
                  +-> FAILED

A failed start leaves the application in FAILED with the user-facing message
"failed to start"; the underlying error stays on ``app.error`` for logs.

Usage:
    async with bootstrap(manifest="services.json") as app:
        api = await app.container.get("Api")
"""

from __future__ import annotations

import asyncio
import signal
import sys
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Union
from uuid import UUID, uuid4

from core.manifest import load_manifest
from di.container import Container, HealthReport
from di.registry import ServiceRegistry
from observability.logging import LogContext, get_logger
from observability.reporting import ErrorReporter
from observability.tracing import create_span

logger = get_logger("servicegraph.bootstrap")

FAILED_TO_START = "failed to start"


class ApplicationPhase(Enum):
    """Application lifecycle phases."""
    CREATED = "created"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass(frozen=True)
class LifecycleEvent:
    """Immutable record of one phase transition."""
    event_id: UUID
    timestamp: float
    phase: ApplicationPhase
    success: bool
    duration_ms: float
    error: Optional[str] = None
    error_type: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success_event(
        cls,
        phase: ApplicationPhase,
        duration_ms: float,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "LifecycleEvent":
        return cls(
            event_id=uuid4(),
            timestamp=time.time(),
            phase=phase,
            success=True,
            duration_ms=duration_ms,
            metadata=metadata or {},
        )

    @classmethod
    def failure_event(
        cls,
        phase: ApplicationPhase,
        error: BaseException,
        duration_ms: float = 0.0,
    ) -> "LifecycleEvent":
        return cls(
            event_id=uuid4(),
            timestamp=time.time(),
            phase=phase,
            success=False,
            duration_ms=duration_ms,
            error=str(error),
            error_type=type(error).__name__,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp,
            "phase": self.phase.value,
            "success": self.success,
            "duration_ms": round(self.duration_ms, 2),
            "error": self.error,
            "error_type": self.error_type,
        }


class Application:
    """
    A registry and its container, started and stopped as one unit.

    The container is passed around by reference; there is no global
    application or container.
    """

    def __init__(
        self,
        registry: ServiceRegistry,
        container: Optional[Container] = None,
        reporter: Optional[ErrorReporter] = None,
    ):
        self._registry = registry
        self._container = container or Container(registry, reporter=reporter)
        self._phase = ApplicationPhase.CREATED
        self._events: List[LifecycleEvent] = []
        self._error: Optional[BaseException] = None
        self._started_at: Optional[float] = None
        self._shutdown_requested = asyncio.Event()

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def phase(self) -> ApplicationPhase:
        return self._phase

    @property
    def registry(self) -> ServiceRegistry:
        return self._registry

    @property
    def container(self) -> Container:
        return self._container

    @property
    def error(self) -> Optional[BaseException]:
        """The error behind a failed start, if any."""
        return self._error

    @property
    def is_running(self) -> bool:
        return self._phase == ApplicationPhase.RUNNING

    @property
    def status_message(self) -> str:
        if self._phase == ApplicationPhase.FAILED:
            return FAILED_TO_START
        return self._phase.value

    @property
    def uptime_seconds(self) -> float:
        if self._started_at is None or self._phase != ApplicationPhase.RUNNING:
            return 0.0
        return time.time() - self._started_at

    @property
    def events(self) -> List[LifecycleEvent]:
        return list(self._events)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Run the bootstrap sweep; on failure enter FAILED and re-raise."""
        if self._phase == ApplicationPhase.RUNNING:
            return

        self._phase = ApplicationPhase.STARTING
        self._error = None
        started = time.perf_counter()

        try:
            with create_span(
                "application.start",
                attributes={"registry.services": len(self._registry)},
            ):
                await self._container.initialize()
        except Exception as e:
            self._phase = ApplicationPhase.FAILED
            self._error = e
            self._record(LifecycleEvent.failure_event(
                ApplicationPhase.STARTING, e, (time.perf_counter() - started) * 1000,
            ))
            logger.error("Application " + FAILED_TO_START, error=e)
            raise

        self._phase = ApplicationPhase.RUNNING
        self._started_at = time.time()
        self._record(LifecycleEvent.success_event(
            ApplicationPhase.STARTING,
            (time.perf_counter() - started) * 1000,
            metadata={"services": self._container.init_count},
        ))
        logger.info("Application running", services=self._container.init_count)

    async def stop(self) -> None:
        """Tear every service down in reverse initialization order."""
        if self._phase in (ApplicationPhase.STOPPED, ApplicationPhase.CREATED):
            return

        previous = self._phase
        self._phase = ApplicationPhase.STOPPING
        started = time.perf_counter()
        logger.info("Stopping application")

        try:
            await self._container.destroy_all()
        except Exception as e:
            self._record(LifecycleEvent.failure_event(
                ApplicationPhase.STOPPING, e, (time.perf_counter() - started) * 1000,
            ))
            logger.warning("Errors during shutdown", error=e)
            raise
        finally:
            # A failed start stays FAILED so the reason is not lost
            if previous != ApplicationPhase.FAILED:
                self._phase = ApplicationPhase.STOPPED
            self._started_at = None

        self._record(LifecycleEvent.success_event(
            ApplicationPhase.STOPPING, (time.perf_counter() - started) * 1000,
        ))
        logger.info("Application stopped")

    async def check_health(self) -> HealthReport:
        return await self._container.health_check()

    def request_shutdown(self) -> None:
        """Request graceful shutdown (called by signal handlers)."""
        self._shutdown_requested.set()

    async def wait_for_shutdown(self) -> None:
        await self._shutdown_requested.wait()

    def status(self) -> Dict[str, Any]:
        """Phase, uptime and container statistics in one report."""
        report: Dict[str, Any] = {
            "phase": self._phase.value,
            "message": self.status_message,
            "uptime_seconds": round(self.uptime_seconds, 3),
            "stats": self._container.get_stats(),
            "verification": self._container.verify_services(),
            "events": [event.to_dict() for event in self._events],
        }
        if self._error is not None:
            report["error"] = str(self._error)
            report["error_type"] = type(self._error).__name__
        return report

    def _record(self, event: LifecycleEvent) -> None:
        self._events.append(event)
        if event.success:
            logger.debug(
                "Lifecycle event",
                phase=event.phase.value,
                duration_ms=round(event.duration_ms, 2),
            )
        else:
            logger.warning(
                "Lifecycle event failed",
                phase=event.phase.value,
                error=event.error,
            )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


@asynccontextmanager
async def bootstrap(
    registry: Optional[ServiceRegistry] = None,
    manifest: Optional[Union[str, Path]] = None,
    reporter: Optional[ErrorReporter] = None,
    setup_signals: bool = False,
) -> AsyncIterator[Application]:
    """
    Start an application and always stop it on exit.

    Usage:
        async with bootstrap(registry) as app:
            http = await app.container.get("Http")

    Args:
        registry: Registry to run; mutually exclusive with ``manifest``
        manifest: Path to a JSON manifest to load the registry from
        reporter: Error reporter handed to the container
        setup_signals: Install SIGTERM/SIGINT handlers requesting shutdown

    Yields:
        Running Application instance
    """
    if (registry is None) == (manifest is None):
        raise ValueError("Pass exactly one of registry or manifest")

    if registry is None:
        registry = load_manifest(manifest)

    app = Application(registry, reporter=reporter)
    handled = _install_signal_handlers(app) if setup_signals else []

    async with LogContext(app_instance=str(uuid4())[:8]):
        try:
            await app.start()
            yield app
        except BaseException:
            # Teardown errors must not replace the error that got us here
            try:
                await app.stop()
            except Exception as e:
                logger.error("Teardown failed after error", error=e)
            raise
        else:
            await app.stop()
        finally:
            _remove_signal_handlers(handled)


def _install_signal_handlers(app: Application) -> List[signal.Signals]:
    """Route SIGTERM/SIGINT to ``app.request_shutdown``."""
    if sys.platform == "win32":
        return []
    loop = asyncio.get_running_loop()
    handled = [signal.SIGTERM, signal.SIGINT]
    for sig in handled:
        loop.add_signal_handler(sig, app.request_shutdown)
    return handled


def _remove_signal_handlers(handled: List[signal.Signals]) -> None:
    if not handled:
        return
    loop = asyncio.get_running_loop()
    for sig in handled:
        loop.remove_signal_handler(sig)
