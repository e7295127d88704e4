"""
servicegraph - Dependency Injection Module

Dependency-ordered service container: a registry of service descriptors, a
deterministic initialization order across the declared graph, and an async
container that instantiates, wires and tears services down.

Design Principles:
    1. Explicit container: passed by reference, never an ambient global
    2. Typed dependencies: each dependency names its injection key
    3. Fail before constructing: the registry is validated up front
    4. Reverse teardown: dependents are destroyed before their dependencies

Usage:
    from di import Container, ServiceRegistry, Dependency

    class Api:
        async def initialize(self, deps):
            self.http = deps.http

    registry = ServiceRegistry()
    registry.register(name="Logger", implementation=Logger)
    registry.register(name="Http", implementation=HttpClient, dependencies=["Logger"])
    registry.register(name="Api", implementation=Api, dependencies=["Http", "Logger"])

    container = Container(registry)
    await container.initialize()          # Logger, Http, Api
    api = await container.get("Api")
"""

from di.descriptors import (
    # Descriptors
    Dependency,
    Dependencies,
    DependencySpec,
    ServiceDescriptor,
    default_key,
    import_from_path,
)

from di.registry import (
    # Registry
    ServiceRegistry,
    ValidationResult,
)

from di.container import (
    # Container
    Container,
    HealthReport,
)

from di.graph import (
    # Graph export
    DependencyGraph,
    GraphEdge,
    GraphNode,
)


__all__ = [
    # Descriptors
    "Dependency",
    "Dependencies",
    "DependencySpec",
    "ServiceDescriptor",
    "default_key",
    "import_from_path",
    # Registry
    "ServiceRegistry",
    "ValidationResult",
    # Container
    "Container",
    "HealthReport",
    # Graph export
    "DependencyGraph",
    "GraphEdge",
    "GraphNode",
]
