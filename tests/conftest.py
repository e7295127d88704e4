"""
servicegraph - Test Configuration

Pytest fixtures and configuration for all tests.
"""
import json
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pytest

from observability.logging import LoggingConfig, setup_logging

# Must run before any module-level logger is first used:
# capture_logs cannot see cached loggers.
setup_logging(LoggingConfig(cache_logger_on_first_use=False))

from di.registry import ServiceRegistry  # noqa: E402
from tests.fixtures.services import Api, HttpClient, Logger  # noqa: E402


class RecordingReporter:
    """ErrorReporter that keeps every report for assertions."""

    def __init__(self):
        self.reports: List[Tuple[BaseException, Dict[str, Any]]] = []

    def report(self, error, tags):
        self.reports.append((error, dict(tags)))

    @property
    def errors(self) -> List[BaseException]:
        return [error for error, _ in self.reports]


@pytest.fixture
def reporter() -> RecordingReporter:
    """Error reporter that records instead of logging."""
    return RecordingReporter()


@pytest.fixture
def journal() -> List[Tuple[str, str]]:
    """Lifecycle journal shared by tracked services."""
    return []


@pytest.fixture
def web_registry() -> ServiceRegistry:
    """Logger <- Http <- Api, registered dependents first."""
    registry = ServiceRegistry()
    registry.register(name="Api", implementation=Api, dependencies=["Http", "Logger"])
    registry.register(name="Http", implementation=HttpClient, dependencies=["Logger"])
    registry.register(name="Logger", implementation=Logger)
    return registry


@pytest.fixture
def manifest_data() -> Dict[str, Any]:
    """A valid manifest document using the fixture services."""
    return {
        "services": [
            {
                "name": "Logger",
                "implementation": "tests.fixtures.services:Logger",
                "phase": 0,
                "description": "Structured log sink",
            },
            {
                "name": "HttpClient",
                "implementation": "tests.fixtures.services:HttpClient",
                "dependencies": ["Logger"],
            },
            {
                "name": "Api",
                "implementation": "tests.fixtures.services:Api",
                "dependencies": [
                    {"name": "HttpClient", "key": "http"},
                    "Logger",
                ],
                "phase": 2,
            },
        ]
    }


@pytest.fixture
def manifest_file(tmp_path, manifest_data) -> Path:
    """The valid manifest written to disk."""
    path = tmp_path / "services.json"
    path.write_text(json.dumps(manifest_data))
    return path


@pytest.fixture
def cyclic_manifest_file(tmp_path) -> Path:
    """A -> B -> C -> A."""
    path = tmp_path / "cyclic.json"
    path.write_text(json.dumps({
        "services": [
            {"name": "A", "implementation": "tests.fixtures.services:Logger", "dependencies": ["B"]},
            {"name": "B", "implementation": "tests.fixtures.services:Logger", "dependencies": ["C"]},
            {"name": "C", "implementation": "tests.fixtures.services:Logger", "dependencies": ["A"]},
        ]
    }))
    return path


@pytest.fixture
def broken_manifest_file(tmp_path) -> Path:
    """Api's initialize hook raises."""
    path = tmp_path / "broken.json"
    path.write_text(json.dumps({
        "services": [
            {"name": "Logger", "implementation": "tests.fixtures.services:Logger"},
            {"name": "Api", "implementation": "tests.fixtures.services:Broken", "dependencies": ["Logger"]},
        ]
    }))
    return path


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "property: marks property-based tests using Hypothesis")
