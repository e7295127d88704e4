"""
Property-Based Tests for Initialization Ordering

Tests ordering, single construction, reverse teardown and cycle rejection over
random service graphs.
"""
import asyncio

import pytest
from hypothesis import given, settings

from core.errors import CircularDependencyError
from di.container import Container
from di.registry import ServiceRegistry
from tests.fixtures.services import events, tracked
from tests.property.strategies import cyclic_graph_strategy, dag_strategy

pytestmark = pytest.mark.property


def _build(specs, journal) -> ServiceRegistry:
    registry = ServiceRegistry()
    for name, dependencies, phase in specs:
        registry.register(
            name=name,
            implementation=tracked(name, journal),
            dependencies=dependencies,
            phase=phase,
        )
    return registry


class TestOrderInvariants:
    """Invariants of ServiceRegistry.get_full_initialization_order()."""

    @given(dag_strategy())
    @settings(max_examples=200)
    def test_every_service_after_its_dependencies(self, specs):
        order = _build(specs, []).get_full_initialization_order()

        position = {name: index for index, name in enumerate(order)}
        for name, dependencies, _ in specs:
            for dep in dependencies:
                assert position[dep] < position[name]

    @given(dag_strategy())
    @settings(max_examples=200)
    def test_each_service_exactly_once(self, specs):
        order = _build(specs, []).get_full_initialization_order()

        assert sorted(order) == sorted(name for name, _, _ in specs)

    @given(dag_strategy())
    @settings(max_examples=100)
    def test_deterministic(self, specs):
        registry = _build(specs, [])
        assert registry.get_full_initialization_order() == registry.get_full_initialization_order()

    @given(dag_strategy())
    @settings(max_examples=100)
    def test_independent_services_follow_phase(self, specs):
        """Without dependencies, order is by phase then declaration."""
        flat = [(name, [], phase) for name, _, phase in specs]
        order = _build(flat, []).get_full_initialization_order()

        expected = [
            name
            for _, _, name in sorted(
                (phase, index, name) for index, (name, _, phase) in enumerate(flat)
            )
        ]
        assert order == expected


class TestContainerInvariants:
    """Invariants of the bootstrap sweep and teardown."""

    @given(dag_strategy())
    @settings(max_examples=100, deadline=None)
    def test_hooks_run_after_dependencies(self, specs):
        journal = []
        container = Container(_build(specs, journal))

        asyncio.run(container.initialize())

        inits = events(journal, "init")
        for name, dependencies, _ in specs:
            for dep in dependencies:
                assert inits.index(dep) < inits.index(name)

    @given(dag_strategy())
    @settings(max_examples=100, deadline=None)
    def test_singletons_constructed_once(self, specs):
        journal = []
        container = Container(_build(specs, journal))

        asyncio.run(container.initialize())

        constructed = events(journal, "new")
        assert len(constructed) == len(set(constructed)) == len(specs)
        assert container.initializing == frozenset()

    @given(dag_strategy())
    @settings(max_examples=100, deadline=None)
    def test_teardown_reverses_initialization(self, specs):
        journal = []
        container = Container(_build(specs, journal))

        async def run():
            await container.initialize()
            await container.destroy_all()

        asyncio.run(run())

        assert events(journal, "destroy") == list(reversed(events(journal, "init")))

    @given(cyclic_graph_strategy())
    @settings(max_examples=100, deadline=None)
    def test_cycles_rejected_before_construction(self, specs):
        journal = []
        container = Container(_build(specs, journal))

        with pytest.raises(CircularDependencyError):
            asyncio.run(container.initialize())

        assert journal == []
        assert container.instances == {}
