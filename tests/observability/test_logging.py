"""
Tests for log context binding.
"""
import pytest
import structlog

from di.container import Container
from di.registry import ServiceRegistry
from observability.logging import (
    LogContext,
    bind_context,
    clear_context,
    unbind_context,
)


@pytest.fixture(autouse=True)
def empty_context():
    clear_context()
    yield
    clear_context()


class ContextRecorder:
    """Remembers the log context it was initialized under."""

    seen = None

    def initialize(self, deps):
        ContextRecorder.seen = structlog.contextvars.get_contextvars()


def test_bind_and_unbind():
    bind_context(request_id="r1", user="u1")
    unbind_context("user")

    assert structlog.contextvars.get_contextvars() == {"request_id": "r1"}


def test_clear():
    bind_context(request_id="r1")

    clear_context()

    assert structlog.contextvars.get_contextvars() == {}


def test_log_context_scoped():
    with LogContext(app_instance="abc"):
        assert structlog.contextvars.get_contextvars() == {"app_instance": "abc"}

    assert structlog.contextvars.get_contextvars() == {}


@pytest.mark.asyncio
async def test_sweep_binds_phase():
    registry = ServiceRegistry()
    registry.register(name="Recorder", implementation=ContextRecorder)
    container = Container(registry)

    await container.initialize()

    assert ContextRecorder.seen == {"container_phase": "initialization"}
    assert "container_phase" not in structlog.contextvars.get_contextvars()
