"""
servicegraph - Dependency-Ordered Service Container

Instantiates, wires and manages the lifecycle of the services declared in a
ServiceRegistry.

Features:
- Bootstrap sweep in deterministic dependency order
- Recursive resolution with runtime cycle detection
- Singleton and factory services
- Lazy initialization of auto-init services
- Restart, teardown in reverse initialization order, health checks
- Dependency graph export for diagnostics

Services are plain objects. The container calls three optional hooks by
convention, each of which may be sync or async:

    initialize(dependencies)   after construction, dependencies already ready
    destroy()                  on teardown
    health_check()             truthy when healthy
"""

from __future__ import annotations

import inspect
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Set

from core.errors import (
    CircularDependencyError,
    ContainerError,
    ErrorContext,
    InstantiationError,
    NotAutoInitError,
    NotYetInitializedError,
    RegistryUnavailableError,
    ServiceNotFoundError,
)
from di.descriptors import Dependencies, ServiceDescriptor
from di.graph import DependencyGraph, GraphEdge, GraphNode
from di.registry import ServiceRegistry
from observability.logging import bind_context, get_logger, unbind_context
from observability.reporting import ErrorReporter, default_reporter
from observability.tracing import create_span

logger = get_logger("servicegraph.container")

_MISSING = object()


async def _invoke_hook(instance: Any, hook: str, *args: Any) -> Any:
    """Call ``instance.<hook>(*args)``, awaiting it if needed; ``_MISSING`` if absent."""
    method = getattr(instance, hook, None)
    if not callable(method):
        return _MISSING
    result = method(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


@dataclass
class HealthReport:
    """Health buckets by service name."""

    healthy: List[str] = field(default_factory=list)
    unhealthy: List[str] = field(default_factory=list)
    unknown: List[str] = field(default_factory=list)

    @property
    def is_healthy(self) -> bool:
        return not self.unhealthy

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            "healthy": list(self.healthy),
            "unhealthy": list(self.unhealthy),
            "unknown": list(self.unknown),
        }


class Container:
    """
    Dependency-ordered service container.

    Usage:
        registry = ServiceRegistry()
        registry.register(name="Logger", implementation=Logger)
        registry.register(name="Http", implementation=HttpClient, dependencies=["Logger"])

        container = Container(registry)
        await container.initialize()

        http = await container.get("Http")
        await container.destroy_all()
    """

    def __init__(
        self,
        registry: Optional[ServiceRegistry] = None,
        reporter: Optional[ErrorReporter] = None,
    ) -> None:
        self.registry = registry
        self._reporter: ErrorReporter = reporter or default_reporter()

        self._instances: Dict[str, Any] = {}
        self._initializing: Set[str] = set()
        self._initialized: Set[str] = set()
        self._init_sequence: List[str] = []
        self._resolution_stack: List[str] = []
        self._durations_ms: Dict[str, float] = {}

        # Stats
        self.attempt_count = 0
        self.init_count = 0
        self.error_count = 0
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None
        self._ready = False

    # -------------------------------------------------------------------------
    # State views
    # -------------------------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        """True once the bootstrap sweep completed successfully."""
        return self._ready

    @property
    def instances(self) -> Mapping[str, Any]:
        return MappingProxyType(self._instances)

    @property
    def initializing(self) -> FrozenSet[str]:
        return frozenset(self._initializing)

    @property
    def initialized(self) -> FrozenSet[str]:
        return frozenset(self._initialized)

    @property
    def initialization_sequence(self) -> List[str]:
        """Names in the order they became ready."""
        return list(self._init_sequence)

    # -------------------------------------------------------------------------
    # Bootstrap sweep
    # -------------------------------------------------------------------------

    async def initialize(self) -> None:
        """
        Bring every auto-init service to life in dependency order.

        Validation runs first; an invalid registry aborts before anything is
        constructed. Services then start one at a time, and the first failure
        aborts the sweep.
        """
        if self._ready:
            logger.debug("Container already initialized")
            return

        self.start_time = time.perf_counter()
        self.end_time = None
        bind_context(container_phase="initialization")
        logger.info("Container initializing")

        try:
            with create_span("container.initialize") as span:
                registry = self._require_registry()

                validation = registry.validate()
                for warning in validation.warnings:
                    logger.warning("Registry validation warning", detail=warning)
                if not validation.valid:
                    logger.error("Registry validation failed", errors=validation.errors)
                    validation.raise_if_invalid()
                logger.info("Registry validated")

                order = registry.get_full_initialization_order()
                span.set_attribute("container.service_count", len(order))
                logger.info("Initializing services", count=len(order), order=order)

                for name in order:
                    await self.initialize_service(name)
        except Exception as e:
            self.end_time = time.perf_counter()
            logger.error(
                "Container initialization failed",
                error=e,
                duration_ms=self._sweep_duration_ms(),
            )
            self._report(e, phase="initialization")
            raise
        finally:
            unbind_context("container_phase")

        self.end_time = time.perf_counter()
        self._ready = True
        logger.info(
            "Container initialization complete",
            duration_ms=self._sweep_duration_ms(),
            services=self.init_count,
        )

    async def initialize_service(self, name: str) -> Any:
        """
        Initialize ``name`` and, first, everything it depends on.

        Idempotent for services that are already ready. Re-entering a service
        that is still resolving is a circular dependency.
        """
        if name in self._initialized:
            logger.debug("Service already initialized", service=name)
            return self._instances[name]

        if name in self._initializing:
            raise CircularDependencyError(name, cycle=self._cycle_through(name))

        self._initializing.add(name)
        self._resolution_stack.append(name)
        self.attempt_count += 1
        started = time.perf_counter()

        try:
            with create_span(
                "container.initialize_service",
                attributes={"service.name": name},
            ):
                logger.debug("Initializing service", service=name)
                descriptor = self._require_descriptor(name)
                dependencies = await self._resolve_dependencies(descriptor)
                instance = await self._obtain_instance(descriptor, dependencies)
        except Exception as e:
            self._initializing.discard(name)
            self.error_count += 1
            error = e if isinstance(e, ContainerError) else InstantiationError(name, e)
            logger.error("Service initialization failed", service=name, error=error)
            self._report(error, service=name, action="initialize")
            if error is e:
                raise
            raise error from e
        finally:
            self._resolution_stack.remove(name)

        self._instances[name] = instance
        self._initializing.discard(name)
        self._initialized.add(name)
        self._init_sequence.append(name)
        descriptor.initialized = True
        self.init_count += 1
        self._durations_ms[name] = (time.perf_counter() - started) * 1000

        logger.info(
            "Service initialized",
            service=name,
            duration_ms=round(self._durations_ms[name], 2),
        )
        return instance

    def _cycle_through(self, name: str) -> List[str]:
        """Resolution path from ``name`` back to itself, closed."""
        if name not in self._resolution_stack:
            return [name]
        start = self._resolution_stack.index(name)
        return self._resolution_stack[start:] + [name]

    async def _resolve_dependencies(self, descriptor: ServiceDescriptor) -> Dependencies:
        values: Dict[str, Any] = {}
        for dep in descriptor.dependencies:
            values[dep.key] = await self.get(dep.name)
        return Dependencies(values)

    async def _obtain_instance(
        self,
        descriptor: ServiceDescriptor,
        dependencies: Dependencies,
    ) -> Any:
        if descriptor.singleton and descriptor.instance is not None:
            logger.info("Using existing singleton", service=descriptor.name)
            return descriptor.instance
        return await self._create_instance(descriptor, dependencies)

    async def _create_instance(
        self,
        descriptor: ServiceDescriptor,
        dependencies: Dependencies,
    ) -> Any:
        """Construct via the implementation, then run its initialize hook."""
        factory = descriptor.resolve_implementation()

        instance = factory()
        if inspect.isawaitable(instance):
            instance = await instance

        await _invoke_hook(instance, "initialize", dependencies)
        return instance

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    async def get(self, name: str) -> Any:
        """
        Return the live instance of ``name``.

        Auto-init services that have not started yet are initialized on
        demand; anything else must have been started explicitly.
        """
        if name in self._instances:
            return self._instances[name]

        try:
            descriptor = self._require_descriptor(name)
            if not descriptor.auto_init:
                raise NotAutoInitError(name)
        except ContainerError as e:
            self._report(e, service=name, action="get")
            raise

        return await self.initialize_service(name)

    def get_sync(self, name: str) -> Any:
        """Return the instance of ``name`` without ever initializing it."""
        if name not in self._instances:
            raise NotYetInitializedError(name)
        return self._instances[name]

    def has(self, name: str) -> bool:
        return name in self._instances

    async def get_multiple(self, names: List[str]) -> List[Any]:
        instances = []
        for name in names:
            instances.append(await self.get(name))
        return instances

    # -------------------------------------------------------------------------
    # Manual service management
    # -------------------------------------------------------------------------

    def register(self, name: str, instance: Any) -> None:
        """Insert a pre-built instance under ``name``, replacing any existing one."""
        if name in self._initializing:
            raise ContainerError(f"Cannot register {name} while it is being initialized")

        if name in self._instances:
            logger.warning("Overwriting existing instance", service=name)
            self._init_sequence.remove(name)

        self._instances[name] = instance
        self._initialized.add(name)
        self._init_sequence.append(name)

        descriptor = self.registry.get_service(name) if self.registry else None
        if descriptor is not None:
            descriptor.initialized = True

        logger.info("Manually registered", service=name)

    async def create_factory(
        self,
        name: str,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """
        Build a fresh instance of a non-singleton service.

        ``overrides`` replace registry-resolved dependencies by injection key.
        The instance is handed to the caller and never stored.
        """
        descriptor = self._require_descriptor(name)

        if descriptor.singleton:
            logger.warning(
                "Service is a singleton, returning existing instance", service=name
            )
            return await self.get(name)

        dependencies = (await self._resolve_dependencies(descriptor)).merged(overrides)
        try:
            instance = await self._create_instance(descriptor, dependencies)
        except ContainerError as e:
            self._report(e, service=name, action="create_factory")
            raise
        except Exception as e:
            error = InstantiationError(name, e)
            self._report(error, service=name, action="create_factory")
            raise error from e

        logger.debug("Factory instance created", service=name)
        return instance

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def destroy(self, name: str) -> None:
        """
        Tear down ``name``.

        The container forgets the instance even when its destroy hook raises;
        the hook's error is reported and then propagates.
        """
        if name not in self._instances:
            logger.warning("Service not found, nothing to destroy", service=name)
            return

        instance = self._instances[name]
        try:
            await _invoke_hook(instance, "destroy")
        except Exception as e:
            logger.error("Failed to destroy service", service=name, error=e)
            self._report(e, service=name, action="destroy")
            raise
        finally:
            self._forget(name)

        logger.info("Service destroyed", service=name)

    def _forget(self, name: str) -> None:
        self._instances.pop(name, None)
        self._initialized.discard(name)
        self._durations_ms.pop(name, None)
        if name in self._init_sequence:
            self._init_sequence.remove(name)

        descriptor = self.registry.get_service(name) if self.registry else None
        if descriptor is not None:
            descriptor.initialized = False

    async def destroy_all(self) -> None:
        """
        Tear everything down, dependents before their dependencies.

        Every service gets its destroy hook called; the first failure is
        re-raised once all of them have run.
        """
        names = list(reversed(self._init_sequence))
        logger.info("Destroying all services", count=len(names))

        first_error: Optional[BaseException] = None
        for name in names:
            try:
                await self.destroy(name)
            except Exception as e:
                if first_error is None:
                    first_error = e

        self._ready = False

        if first_error is not None:
            raise first_error

        logger.info("All services destroyed")

    async def restart(self, name: str) -> Any:
        """Destroy ``name`` and initialize it again; returns the new instance."""
        logger.info("Restarting service", service=name)

        descriptor = self.registry.get_service(name) if self.registry else None
        if descriptor is not None and descriptor.instance is not None:
            # The adopted object would come back torn down and never re-initialized
            error = ContainerError(
                f"Pre-built instance of {name} cannot be restarted; use register()",
                suggestions=["Register a fresh instance with Container.register()"],
            )
            self._report(error, service=name, action="restart")
            raise error

        await self.destroy(name)
        instance = await self.initialize_service(name)

        logger.info("Service restarted", service=name)
        return instance

    # -------------------------------------------------------------------------
    # Health checks
    # -------------------------------------------------------------------------

    async def health_check(self) -> HealthReport:
        """Bucket every live service by the result of its health_check hook."""
        report = HealthReport()

        for name, instance in list(self._instances.items()):
            try:
                result = await _invoke_hook(instance, "health_check")
            except Exception as e:
                logger.warning("Health check raised", service=name, error=e)
                self._report(e, service=name, action="health_check")
                report.unhealthy.append(name)
                continue

            if result is _MISSING:
                report.unknown.append(name)
            elif result:
                report.healthy.append(name)
            else:
                report.unhealthy.append(name)

        return report

    def verify_services(self) -> Dict[str, Any]:
        """Auto-init services that are not ready (post-hoc completeness check)."""
        registry = self._require_registry()
        missing = [
            service.name
            for service in registry.get_auto_init_services()
            if service.name not in self._initialized
        ]
        return {"verified": not missing, "missing": missing}

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    def _sweep_duration_ms(self) -> Optional[float]:
        if self.start_time is None or self.end_time is None:
            return None
        return round((self.end_time - self.start_time) * 1000, 2)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_services": len(self._instances),
            "initialized": len(self._initialized),
            "initializing": len(self._initializing),
            "attempts": self.attempt_count,
            "init_count": self.init_count,
            "error_count": self.error_count,
            "init_time_ms": self._sweep_duration_ms(),
        }

    def get_initialization_breakdown(self) -> List[Dict[str, Any]]:
        """Ready services sorted by phase, with per-service duration."""
        registry = self._require_registry()
        breakdown = []

        for name in self._init_sequence:
            service = registry.get_service(name)
            if service is None:
                continue
            breakdown.append({
                "name": name,
                "phase": service.phase,
                "dependencies": len(service.dependencies),
                "duration_ms": round(self._durations_ms.get(name, 0.0), 2),
            })

        return sorted(breakdown, key=lambda entry: entry["phase"])

    def get_debug_info(self) -> Dict[str, Any]:
        return {
            "stats": self.get_stats(),
            "verification": self.verify_services(),
            "breakdown": self.get_initialization_breakdown(),
        }

    # -------------------------------------------------------------------------
    # Dependency graph
    # -------------------------------------------------------------------------

    def get_dependency_graph(self) -> DependencyGraph:
        """Node/edge view of the full declared graph; read-only."""
        registry = self._require_registry()
        graph = DependencyGraph()

        for service in registry.get_all_services():
            graph.nodes.append(GraphNode(
                id=service.name,
                phase=service.phase,
                initialized=service.name in self._initialized,
                auto_init=service.auto_init,
                singleton=service.singleton,
            ))
            for dep in service.dependency_names:
                graph.edges.append(GraphEdge(source=dep, target=service.name))

        return graph

    def export_graph_dot(self) -> str:
        return self.get_dependency_graph().to_dot()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _require_registry(self) -> ServiceRegistry:
        if self.registry is None:
            raise RegistryUnavailableError("ServiceRegistry not available")
        return self.registry

    def _require_descriptor(self, name: str) -> ServiceDescriptor:
        descriptor = self._require_registry().get_service(name)
        if descriptor is None:
            raise ServiceNotFoundError(name)
        return descriptor

    def _report(self, error: BaseException, **tags: Any) -> None:
        """Forward ``error`` to the reporter, once per exception."""
        if isinstance(error, ContainerError):
            if error.reported:
                return
            error.reported = True
            if error.context is None:
                error.context = ErrorContext.from_current_span(
                    operation=tags.get("action") or tags.get("phase", "unknown"),
                    component="Container",
                    service_name=tags.get("service"),
                )

        try:
            self._reporter.report(error, {"component": "Container", **tags})
        except Exception as e:
            logger.warning("Error reporter failed", error=e)

    def __repr__(self) -> str:
        return (
            f"Container(ready={self._ready}, "
            f"initialized={len(self._initialized)}, "
            f"initializing={len(self._initializing)})"
        )
