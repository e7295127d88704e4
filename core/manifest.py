"""
servicegraph - Service Manifests

Declares services in a JSON document instead of code, for the CLI and for
``bootstrap(manifest=...)``:

    {
      "services": [
        {"name": "Logger", "implementation": "app.logging:Logger", "phase": 0},
        {"name": "Api", "implementation": "app.api:Api",
         "dependencies": ["Logger", {"name": "HttpClient", "key": "http"}]}
      ]
    }

Implementations are import paths, resolved when the service is built and
checked by ``ServiceRegistry.validate()``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from core.errors import ManifestError
from di.descriptors import Dependency, ServiceDescriptor
from di.registry import ServiceRegistry
from observability.logging import get_logger

logger = get_logger("servicegraph.manifest")


class ManifestDependency(BaseModel):
    """A dependency with an explicit injection key."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, description="Service depended upon")
    key: Optional[str] = Field(default=None, min_length=1, description="Injection key")


class ManifestService(BaseModel):
    """One service entry of a manifest."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, description="Unique service name")
    implementation: str = Field(
        ..., min_length=1, description="Import path, e.g. package.module:Class"
    )
    dependencies: List[Union[str, ManifestDependency]] = Field(default_factory=list)
    singleton: bool = True
    auto_init: bool = True
    phase: int = Field(default=1, description="Ordering hint among ready services")
    description: str = ""

    def to_descriptor(self) -> ServiceDescriptor:
        dependencies = [
            Dependency(dep) if isinstance(dep, str) else Dependency(dep.name, key=dep.key)
            for dep in self.dependencies
        ]
        return ServiceDescriptor(
            name=self.name,
            implementation=self.implementation,
            dependencies=dependencies,
            singleton=self.singleton,
            auto_init=self.auto_init,
            phase=self.phase,
            description=self.description,
        )


class Manifest(BaseModel):
    """A complete manifest document."""

    model_config = ConfigDict(extra="forbid")

    services: List[ManifestService] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_unique_names(self) -> "Manifest":
        seen = set()
        for service in self.services:
            if service.name in seen:
                raise ValueError(f"Service {service.name} declared more than once")
            seen.add(service.name)
        return self

    def to_registry(self) -> ServiceRegistry:
        return ServiceRegistry([service.to_descriptor() for service in self.services])


def _format_validation_error(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "manifest"
        problems.append(f"{location}: {item['msg']}")
    return "; ".join(problems)


def registry_from_mapping(
    data: Mapping[str, Any],
    source: Optional[str] = None,
) -> ServiceRegistry:
    """Build a registry from an already-parsed manifest document."""
    try:
        manifest = Manifest.model_validate(data)
    except ValidationError as e:
        raise ManifestError(
            f"Invalid manifest: {_format_validation_error(e)}",
            path=source,
            cause=e,
        ) from e

    registry = manifest.to_registry()
    logger.info("Manifest loaded", source=source, services=len(registry))
    return registry


def load_manifest(path: Union[str, Path]) -> ServiceRegistry:
    """Read a JSON manifest from disk into a registry."""
    path = Path(path)

    try:
        data: Dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ManifestError(f"Manifest not found: {path}", path=str(path), cause=e) from e
    except OSError as e:
        raise ManifestError(
            f"Manifest cannot be read: {path} ({e.strerror or e})",
            path=str(path),
            cause=e,
        ) from e
    except UnicodeDecodeError as e:
        raise ManifestError(
            f"Manifest is not valid UTF-8: {path} (byte {e.start})",
            path=str(path),
            cause=e,
        ) from e
    except json.JSONDecodeError as e:
        raise ManifestError(
            f"Manifest is not valid JSON: {path} (line {e.lineno})",
            path=str(path),
            cause=e,
        ) from e

    if not isinstance(data, dict):
        raise ManifestError("Manifest must be a JSON object", path=str(path))

    return registry_from_mapping(data, source=str(path))
