"""
Tests for loading service manifests.
"""
import pytest

from core.errors import ManifestError
from core.manifest import Manifest, load_manifest, registry_from_mapping
from di.container import Container
from di.descriptors import Dependency


class TestLoadManifest:
    """Tests for reading manifests from disk."""

    def test_loads_descriptors(self, manifest_file):
        registry = load_manifest(manifest_file)

        assert [s.name for s in registry.get_all_services()] == ["Logger", "HttpClient", "Api"]
        logger = registry.get_service("Logger")
        assert logger.phase == 0
        assert logger.description == "Structured log sink"
        assert logger.implementation == "tests.fixtures.services:Logger"

    def test_dependency_forms(self, manifest_file):
        registry = load_manifest(manifest_file)

        assert registry.get_service("Api").dependencies == [
            Dependency("HttpClient", key="http"),
            Dependency("Logger"),
        ]

    def test_loaded_registry_validates_and_orders(self, manifest_file):
        registry = load_manifest(manifest_file)

        assert registry.validate().valid
        assert registry.get_full_initialization_order() == ["Logger", "HttpClient", "Api"]

    @pytest.mark.asyncio
    async def test_loaded_registry_boots(self, manifest_file):
        container = Container(load_manifest(manifest_file))

        await container.initialize()

        api = await container.get("Api")
        assert api.http is await container.get("HttpClient")
        await container.destroy_all()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ManifestError) as exc_info:
            load_manifest(tmp_path / "nope.json")

        assert "not found" in exc_info.value.message
        assert exc_info.value.path.endswith("nope.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")

        with pytest.raises(ManifestError) as exc_info:
            load_manifest(path)
        assert "not valid JSON" in exc_info.value.message

    def test_invalid_utf8(self, tmp_path):
        path = tmp_path / "latin1.json"
        path.write_bytes(b'{"services": [{"name": "\xff"}]}')

        with pytest.raises(ManifestError) as exc_info:
            load_manifest(path)

        assert "not valid UTF-8" in exc_info.value.message
        assert isinstance(exc_info.value.cause, UnicodeDecodeError)

    def test_directory_instead_of_file(self, tmp_path):
        with pytest.raises(ManifestError) as exc_info:
            load_manifest(tmp_path)

        assert "cannot be read" in exc_info.value.message
        assert isinstance(exc_info.value.cause, OSError)

    def test_top_level_must_be_object(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[]")

        with pytest.raises(ManifestError):
            load_manifest(path)


class TestManifestValidation:
    """Tests for manifest schema validation."""

    def test_empty_manifest(self):
        assert len(registry_from_mapping({"services": []})) == 0
        assert len(registry_from_mapping({})) == 0

    @pytest.mark.parametrize(
        "service",
        [
            {"name": "", "implementation": "a:b"},
            {"name": "A"},
            {"name": "A", "implementation": "a:b", "lifetime": "scoped"},
            {"name": "A", "implementation": "a:b", "dependencies": [{"key": "x"}]},
            {"name": "A", "implementation": "a:b", "phase": "early"},
        ],
    )
    def test_rejects_bad_services(self, service):
        with pytest.raises(ManifestError) as exc_info:
            registry_from_mapping({"services": [service]})
        assert exc_info.value.message.startswith("Invalid manifest:")

    def test_rejects_duplicate_names(self):
        data = {
            "services": [
                {"name": "A", "implementation": "a:b"},
                {"name": "A", "implementation": "a:c"},
            ]
        }

        with pytest.raises(ManifestError) as exc_info:
            registry_from_mapping(data)
        assert "declared more than once" in exc_info.value.message

    def test_rejects_unknown_top_level_keys(self):
        with pytest.raises(ManifestError):
            registry_from_mapping({"services": [], "version": 2})

    def test_model_defaults(self):
        manifest = Manifest.model_validate(
            {"services": [{"name": "A", "implementation": "a:b"}]}
        )
        service = manifest.services[0]

        assert service.singleton is True
        assert service.auto_init is True
        assert service.phase == 1
        assert service.dependencies == []

    def test_missing_implementations_found_by_validation(self):
        registry = registry_from_mapping(
            {"services": [{"name": "A", "implementation": "tests.fixtures.services:Nope"}]}
        )

        result = registry.validate()
        assert result.errors == ["Service A: Implementation tests.fixtures.services:Nope not found"]
