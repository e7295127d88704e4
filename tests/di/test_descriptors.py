"""
Tests for service descriptors, dependency records and injected dependencies.
"""
import pytest

from core.errors import ImplementationNotFoundError, InvalidDescriptorError
from di.descriptors import (
    Dependencies,
    Dependency,
    ServiceDescriptor,
    default_key,
    import_from_path,
)
from tests.fixtures.services import HttpClient, Logger


class TestDefaultKey:
    """Tests for injection key derivation."""

    @pytest.mark.parametrize(
        "name,key",
        [
            ("Http", "http"),
            ("Logger", "logger"),
            ("HttpClient", "http_client"),
            ("AuthAPI", "auth_api"),
            ("cache", "cache"),
            ("event-bus", "event_bus"),
        ],
    )
    def test_snake_case(self, name, key):
        assert default_key(name) == key


class TestDependency:
    """Tests for typed dependency records."""

    def test_key_defaults_from_name(self):
        assert Dependency("HttpClient").key == "http_client"

    def test_explicit_key_wins(self):
        dep = Dependency("HttpClient", key="http")
        assert dep.name == "HttpClient"
        assert dep.key == "http"

    def test_coerce_accepts_strings_records_and_mappings(self):
        record = Dependency("Logger", key="log")

        assert Dependency.coerce("Logger") == Dependency("Logger")
        assert Dependency.coerce(record) is record
        assert Dependency.coerce({"name": "Logger", "key": "log"}) == record

    def test_empty_name_rejected(self):
        with pytest.raises(InvalidDescriptorError):
            Dependency("")

    def test_frozen(self):
        dep = Dependency("Logger")
        with pytest.raises(AttributeError):
            dep.name = "Other"


class TestDependencies:
    """Tests for the read-only dependency mapping."""

    def test_item_and_attribute_access(self):
        logger = Logger()
        deps = Dependencies({"logger": logger})

        assert deps["logger"] is logger
        assert deps.logger is logger
        assert list(deps) == ["logger"]
        assert len(deps) == 1

    def test_missing_key(self):
        deps = Dependencies({})

        with pytest.raises(KeyError):
            deps["http"]
        with pytest.raises(AttributeError):
            deps.http

    def test_read_only(self):
        deps = Dependencies({"logger": object()})
        with pytest.raises(AttributeError):
            deps.logger = None

    def test_merged_overrides_by_key(self):
        original, replacement, extra = object(), object(), object()
        deps = Dependencies({"http": original})

        merged = deps.merged({"http": replacement, "clock": extra})

        assert merged.http is replacement
        assert merged.clock is extra
        assert deps.http is original

    def test_merged_without_overrides(self):
        deps = Dependencies({"http": 1})
        assert dict(deps.merged(None)) == {"http": 1}


class TestServiceDescriptor:
    """Tests for descriptor construction and implementation lookup."""

    def test_defaults(self):
        descriptor = ServiceDescriptor(name="Logger", implementation=Logger)

        assert descriptor.singleton is True
        assert descriptor.auto_init is True
        assert descriptor.phase == 1
        assert descriptor.dependencies == []
        assert descriptor.initialized is False

    def test_dependencies_are_coerced(self):
        descriptor = ServiceDescriptor(
            name="Api",
            implementation=object,
            dependencies=["Logger", {"name": "HttpClient", "key": "http"}],
        )

        assert descriptor.dependencies == [
            Dependency("Logger"),
            Dependency("HttpClient", key="http"),
        ]
        assert descriptor.dependency_names == ["Logger", "HttpClient"]

    def test_name_required(self):
        with pytest.raises(InvalidDescriptorError):
            ServiceDescriptor(name="", implementation=Logger)

    def test_implementation_or_instance_required(self):
        with pytest.raises(InvalidDescriptorError) as exc_info:
            ServiceDescriptor(name="Logger")
        assert exc_info.value.service_name == "Logger"

    def test_prebuilt_instance_is_enough(self):
        logger = Logger()
        descriptor = ServiceDescriptor(name="Logger", instance=logger)

        assert descriptor.implementation_name == "Logger"

    def test_prebuilt_instance_requires_singleton(self):
        with pytest.raises(InvalidDescriptorError, match="not a singleton"):
            ServiceDescriptor(name="Scoped", instance=Logger(), singleton=False)

    def test_resolve_class(self):
        descriptor = ServiceDescriptor(name="Http", implementation=HttpClient)
        assert descriptor.resolve_implementation() is HttpClient

    def test_resolve_import_path(self):
        descriptor = ServiceDescriptor(
            name="Http", implementation="tests.fixtures.services:HttpClient"
        )
        assert descriptor.resolve_implementation() is HttpClient

    def test_to_dict(self):
        descriptor = ServiceDescriptor(
            name="Http",
            implementation=HttpClient,
            dependencies=["Logger"],
            description="Outbound HTTP",
        )

        data = descriptor.to_dict()

        assert data["name"] == "Http"
        assert data["implementation"] == "HttpClient"
        assert data["dependencies"] == [{"name": "Logger", "key": "logger"}]
        assert data["description"] == "Outbound HTTP"


class TestImportFromPath:
    """Tests for lazy implementation imports."""

    def test_colon_and_dot_separators(self):
        assert import_from_path("L", "tests.fixtures.services:Logger") is Logger
        assert import_from_path("L", "tests.fixtures.services.Logger") is Logger

    @pytest.mark.parametrize(
        "path",
        [
            "tests.fixtures.services:Missing",
            "no_such_module_anywhere:Thing",
            "Logger",
            "tests.fixtures.services:__doc__",
        ],
    )
    def test_unresolvable(self, path):
        with pytest.raises(ImplementationNotFoundError) as exc_info:
            import_from_path("Svc", path)

        assert exc_info.value.service_name == "Svc"
        assert exc_info.value.import_path == path
