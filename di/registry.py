"""
servicegraph - Service Registry

Static source of truth for which services exist and how they relate.

The registry never constructs anything. It answers graph questions:
- lookups by name, phase, auto-init and singleton flags
- direct, transitive and reverse dependencies
- a deterministic topological initialization order
- validation (missing dependencies, unresolvable implementations, cycles)
"""

from __future__ import annotations

import heapq
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Union

from core.errors import (
    CircularDependencyError,
    ContainerError,
    DuplicateServiceError,
    RegistryValidationError,
    ServiceNotFoundError,
)
from di.descriptors import DependencySpec, ServiceDescriptor
from observability.logging import get_logger

logger = get_logger("servicegraph.registry")

# DFS colouring states
_WHITE, _GREY, _BLACK = 0, 1, 2


@dataclass
class ValidationResult:
    """Outcome of ``ServiceRegistry.validate()``."""

    valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    cycles: List[List[str]] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        self.valid = False

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    @property
    def only_cycles(self) -> bool:
        """True when every error comes from a dependency cycle."""
        return bool(self.cycles) and len(self.errors) == len(self.cycles)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "cycles": [list(c) for c in self.cycles],
        }

    def raise_if_invalid(self) -> None:
        """Raise the most specific error for an invalid registry."""
        if self.valid:
            return
        if self.only_cycles:
            cycle = self.cycles[0]
            raise CircularDependencyError(cycle[0], cycle=cycle)
        raise RegistryValidationError(self.errors)


class ServiceRegistry:
    """
    Registry of service descriptors.

    Usage:
        registry = ServiceRegistry()
        registry.register(name="Logger", implementation=Logger)
        registry.register(name="Http", implementation=HttpClient, dependencies=["Logger"])

        registry.validate().raise_if_invalid()
        order = registry.get_full_initialization_order()   # ["Logger", "Http"]
    """

    def __init__(self, descriptors: Optional[Sequence[ServiceDescriptor]] = None):
        self._services: Dict[str, ServiceDescriptor] = {}
        for descriptor in descriptors or ():
            self.register(descriptor)

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register(
        self,
        descriptor: Optional[ServiceDescriptor] = None,
        *,
        name: Optional[str] = None,
        implementation: Union[Callable[..., Any], str, None] = None,
        dependencies: Optional[Sequence[DependencySpec]] = None,
        singleton: bool = True,
        auto_init: bool = True,
        phase: int = 1,
        description: str = "",
        instance: Any = None,
    ) -> ServiceDescriptor:
        """Register a descriptor, either pre-built or from keyword fields."""
        if descriptor is None:
            descriptor = ServiceDescriptor(
                name=name or "",
                implementation=implementation,
                dependencies=list(dependencies or []),
                singleton=singleton,
                auto_init=auto_init,
                phase=phase,
                description=description,
                instance=instance,
            )

        if descriptor.name in self._services:
            raise DuplicateServiceError(descriptor.name)

        self._services[descriptor.name] = descriptor
        logger.debug(
            "Service registered",
            service=descriptor.name,
            dependencies=descriptor.dependency_names,
            phase=descriptor.phase,
        )
        return descriptor

    def unregister(self, name: str) -> None:
        if self._services.pop(name, None) is None:
            raise ServiceNotFoundError(name)

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get_service(self, name: str) -> Optional[ServiceDescriptor]:
        return self._services.get(name)

    def has_service(self, name: str) -> bool:
        return name in self._services

    def get_all_services(self) -> List[ServiceDescriptor]:
        """All descriptors in declaration order."""
        return list(self._services.values())

    def get_auto_init_services(self) -> List[ServiceDescriptor]:
        return [s for s in self._services.values() if s.auto_init]

    def get_singleton_services(self) -> List[ServiceDescriptor]:
        return [s for s in self._services.values() if s.singleton]

    def get_services_by_phase(self, phase: int) -> List[ServiceDescriptor]:
        return [s for s in self._services.values() if s.phase == phase]

    def __len__(self) -> int:
        return len(self._services)

    def __contains__(self, name: object) -> bool:
        return name in self._services

    # -------------------------------------------------------------------------
    # Dependency queries
    # -------------------------------------------------------------------------

    def get_service_dependencies(self, name: str) -> List[str]:
        """Direct dependencies of ``name`` (empty for unknown names)."""
        service = self.get_service(name)
        return service.dependency_names if service else []

    def get_all_dependencies(self, name: str) -> List[str]:
        """Transitive dependencies of ``name``, de-duplicated, cycle-safe."""
        result: List[str] = []
        seen: Set[str] = {name}
        stack = list(reversed(self.get_service_dependencies(name)))

        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            result.append(current)
            stack.extend(reversed(self.get_service_dependencies(current)))

        return result

    def get_dependents(self, name: str) -> List[str]:
        """Services that list ``name`` as a direct dependency."""
        return [
            s.name for s in self._services.values() if name in s.dependency_names
        ]

    def get_initialization_order(self, name: str) -> List[str]:
        """Dependency-first order needed to bring up ``name``."""
        order: List[str] = []
        visited: Set[str] = set()
        visiting: List[str] = []

        def visit(service_name: str) -> None:
            if service_name in visited:
                return
            if service_name in visiting:
                cycle = visiting[visiting.index(service_name):] + [service_name]
                raise CircularDependencyError(service_name, cycle=cycle)

            service = self.get_service(service_name)
            if service is None:
                raise ServiceNotFoundError(service_name)

            visiting.append(service_name)
            for dep in service.dependency_names:
                visit(dep)
            visiting.pop()

            visited.add(service_name)
            order.append(service_name)

        visit(name)
        return order

    def get_full_initialization_order(self) -> List[str]:
        """
        Topological order of every auto-init service.

        Each name appears after all of its (auto-init) dependencies. Among
        services whose dependencies are satisfied, the lowest ``phase`` goes
        first, then declaration order. Dependencies that are not auto-init are
        left out; they must be started explicitly.
        """
        auto = {s.name: s for s in self.get_auto_init_services()}
        position = {name: index for index, name in enumerate(self._services)}

        in_degree: Dict[str, int] = {name: 0 for name in auto}
        dependents: Dict[str, List[str]] = {name: [] for name in auto}
        for name, service in auto.items():
            for dep in dict.fromkeys(service.dependency_names):
                if dep in auto:
                    dependents[dep].append(name)
                    in_degree[name] += 1

        ready = [
            (auto[name].phase, position[name], name)
            for name, degree in in_degree.items()
            if degree == 0
        ]
        heapq.heapify(ready)

        order: List[str] = []
        while ready:
            _, _, current = heapq.heappop(ready)
            order.append(current)
            for dependent in dependents[current]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    heapq.heappush(
                        ready, (auto[dependent].phase, position[dependent], dependent)
                    )

        if len(order) != len(auto):
            remaining = [name for name in auto if name not in set(order)]
            cycles = self.find_cycles()
            cycle = cycles[0] if cycles else remaining
            raise CircularDependencyError(cycle[0], cycle=cycle)

        return order

    def find_cycles(self) -> List[List[str]]:
        """
        Every distinct cycle reachable by DFS over the declared graph.

        Each cycle is returned closed, e.g. ``["A", "B", "C", "A"]``. Missing
        dependency names are skipped; ``validate()`` reports those separately.
        """
        color: Dict[str, int] = {name: _WHITE for name in self._services}
        path: List[str] = []
        cycles: List[List[str]] = []
        seen_cycles: Set[frozenset] = set()

        def visit(name: str) -> None:
            color[name] = _GREY
            path.append(name)
            for dep in self._services[name].dependency_names:
                if dep not in self._services:
                    continue
                if color[dep] == _GREY:
                    cycle = path[path.index(dep):] + [dep]
                    key = frozenset(cycle)
                    if key not in seen_cycles:
                        seen_cycles.add(key)
                        cycles.append(cycle)
                elif color[dep] == _WHITE:
                    visit(dep)
            path.pop()
            color[name] = _BLACK

        for name in self._services:
            if color[name] == _WHITE:
                visit(name)

        return cycles

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate(self) -> ValidationResult:
        """Check every descriptor; nothing is constructed."""
        result = ValidationResult()

        for service in self._services.values():
            if isinstance(service.implementation, str):
                try:
                    service.resolve_implementation()
                except ContainerError:
                    result.add_error(
                        f"Service {service.name}: Implementation "
                        f"{service.implementation} not found"
                    )

            for dep in service.dependency_names:
                if dep not in self._services:
                    result.add_error(
                        f"Service {service.name}: Dependency {dep} not registered"
                    )
                elif service.auto_init and not self._services[dep].auto_init:
                    result.add_warning(
                        f"Service {service.name}: auto-init service depends on "
                        f"{dep}, which requires explicit initialization"
                    )

        for cycle in self.find_cycles():
            result.cycles.append(cycle)
            result.add_error(f"Circular dependency detected: {' -> '.join(cycle)}")

        return result

    def has_circular_dependencies(self) -> bool:
        return bool(self.find_cycles())

    # -------------------------------------------------------------------------
    # Statistics and rendering
    # -------------------------------------------------------------------------

    def get_phase_breakdown(self) -> Dict[int, int]:
        breakdown: Dict[int, int] = {}
        for service in self._services.values():
            breakdown[service.phase] = breakdown.get(service.phase, 0) + 1
        return dict(sorted(breakdown.items()))

    def get_stats(self) -> Dict[str, Any]:
        services = self.get_all_services()
        return {
            "total_services": len(services),
            "auto_init_services": sum(1 for s in services if s.auto_init),
            "singleton_services": sum(1 for s in services if s.singleton),
            "phase_breakdown": self.get_phase_breakdown(),
            "initialized": sum(1 for s in services if s.initialized),
        }

    def render_tree(self) -> str:
        """Services grouped by phase, each with its direct dependencies."""
        lines: List[str] = []
        for phase in self.get_phase_breakdown():
            lines.append(f"Phase {phase}")
            for service in self.get_services_by_phase(phase):
                deps = service.dependency_names
                suffix = f" -> [{', '.join(deps)}]" if deps else ""
                lines.append(f"  {service.name}{suffix}")
        return "\n".join(lines)

    def render_initialization_order(self) -> str:
        return "\n".join(
            f"{index}. {name} (Phase {self._services[name].phase})"
            for index, name in enumerate(self.get_full_initialization_order(), 1)
        )
