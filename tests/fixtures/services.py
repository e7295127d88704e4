"""
Sample services for container tests.

The classes here are referenced by import path from test manifests
(``tests.fixtures.services:Logger``), so they must stay importable.
"""
import os
import signal
from typing import Any, List, Tuple

Journal = List[Tuple[str, str]]


class Logger:
    """Sync hooks only."""

    def __init__(self):
        self.messages: List[str] = []
        self.closed = False

    def initialize(self, deps):
        self.log("logger ready")

    def log(self, message: str) -> None:
        self.messages.append(message)

    def health_check(self) -> bool:
        return not self.closed

    def destroy(self) -> None:
        self.closed = True


class HttpClient:
    """Async hooks, depends on Logger."""

    def __init__(self):
        self.logger = None
        self.closed = False

    async def initialize(self, deps):
        self.logger = deps.logger
        self.logger.log("http ready")

    async def health_check(self) -> bool:
        return not self.closed

    async def destroy(self) -> None:
        self.closed = True


class Api:
    """Depends on HttpClient and Logger; no health check."""

    def __init__(self):
        self.http = None
        self.logger = None

    async def initialize(self, deps):
        self.http = deps.http
        self.logger = deps.logger


class Broken:
    def initialize(self, deps):
        raise RuntimeError("cannot connect")


class Session:
    """Factory service: one per request."""

    def __init__(self):
        self.http = None

    async def initialize(self, deps):
        self.http = deps.http


class ShutdownOnStart:
    """Asks its own process to shut down as soon as it is initialized."""

    def initialize(self, deps):
        os.kill(os.getpid(), signal.SIGTERM)


async def make_cache() -> Any:
    """Async factory function instead of a class."""
    return {"kind": "cache"}


def tracked(
    name: str,
    journal: Journal,
    *,
    fail: bool = False,
    fail_on_destroy: bool = False,
    healthy: Any = True,
) -> type:
    """
    Build a service class that records its lifecycle in ``journal``.

    Entries are ``("new", name)``, ``("init", name)`` and ``("destroy", name)``.
    """

    class Tracked:
        def __init__(self):
            self.dependencies = None
            self.destroyed = False
            journal.append(("new", name))

        async def initialize(self, deps):
            self.dependencies = deps
            if fail:
                raise RuntimeError(f"{name} failed to initialize")
            journal.append(("init", name))

        async def destroy(self):
            self.destroyed = True
            journal.append(("destroy", name))
            if fail_on_destroy:
                raise RuntimeError(f"{name} failed to destroy")

        async def health_check(self):
            if isinstance(healthy, Exception):
                raise healthy
            return healthy

    Tracked.__name__ = Tracked.__qualname__ = name
    return Tracked


def events(journal: Journal, kind: str) -> List[str]:
    """Names from ``journal`` entries of one kind, in order."""
    return [name for event, name in journal if event == kind]
