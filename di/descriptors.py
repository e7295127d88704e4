"""
servicegraph - Service Descriptors

Static metadata describing one manageable service, plus the typed dependency
record that names exactly which handle a service receives and under which key.
"""

from __future__ import annotations

import importlib
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Union

from core.errors import ImplementationNotFoundError, InvalidDescriptorError

_FIRST_CAP = re.compile(r"(.)([A-Z][a-z]+)")
_ALL_CAP = re.compile(r"([a-z0-9])([A-Z])")


def default_key(name: str) -> str:
    """Injection key for a dependency name: ``HttpClient`` -> ``http_client``."""
    key = _FIRST_CAP.sub(r"\1_\2", name)
    return _ALL_CAP.sub(r"\1_\2", key).replace("-", "_").lower()


@dataclass(frozen=True)
class Dependency:
    """One declared dependency of a service."""

    name: str
    key: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.name:
            raise InvalidDescriptorError("Dependency name is required")
        if self.key is None:
            object.__setattr__(self, "key", default_key(self.name))

    @classmethod
    def coerce(cls, value: Union[str, "Dependency", Mapping[str, Any]]) -> "Dependency":
        if isinstance(value, Dependency):
            return value
        if isinstance(value, str):
            return cls(value)
        return cls(name=value["name"], key=value.get("key"))


DependencySpec = Union[str, Dependency, Mapping[str, Any]]


class Dependencies(Mapping[str, Any]):
    """
    Resolved dependencies handed to a service's ``initialize`` hook.

    Read-only; supports both ``deps["http"]`` and ``deps.http``.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        object.__setattr__(self, "_values", dict(values or {}))

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __getattr__(self, key: str) -> Any:
        try:
            return self._values[key]
        except KeyError:
            raise AttributeError(f"No dependency injected under '{key}'") from None

    def __setattr__(self, key: str, value: Any) -> None:
        raise AttributeError("Dependencies are read-only")

    def merged(self, overrides: Optional[Mapping[str, Any]]) -> "Dependencies":
        """Return a copy with ``overrides`` layered on top."""
        return Dependencies({**self._values, **(overrides or {})})

    def __repr__(self) -> str:
        return f"Dependencies({', '.join(self._values)})"


@dataclass
class ServiceDescriptor:
    """Describes how a service is created and when it comes to life."""

    name: str
    implementation: Union[Callable[..., Any], str, None] = None
    dependencies: List[Dependency] = field(default_factory=list)
    singleton: bool = True
    auto_init: bool = True
    phase: int = 1
    description: str = ""
    instance: Any = None
    initialized: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            raise InvalidDescriptorError("Service name is required")
        if self.implementation is None and self.instance is None:
            raise InvalidDescriptorError(
                f"Service {self.name} must have an implementation",
                service_name=self.name,
            )
        if self.instance is not None and not self.singleton:
            raise InvalidDescriptorError(
                f"Service {self.name} is not a singleton and cannot take a pre-built instance",
                service_name=self.name,
            )
        self.dependencies = [Dependency.coerce(dep) for dep in self.dependencies]

    @property
    def dependency_names(self) -> List[str]:
        return [dep.name for dep in self.dependencies]

    @property
    def implementation_name(self) -> str:
        impl = self.implementation
        if impl is None:
            return type(self.instance).__name__
        if isinstance(impl, str):
            return impl
        return getattr(impl, "__qualname__", repr(impl))

    def resolve_implementation(self) -> Callable[..., Any]:
        """Return the implementation callable, importing ``module:attr`` paths."""
        impl = self.implementation
        if impl is None:
            raise ImplementationNotFoundError(self.name, "<none>")
        if not isinstance(impl, str):
            return impl
        return import_from_path(self.name, impl)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "implementation": self.implementation_name,
            "dependencies": [
                {"name": dep.name, "key": dep.key} for dep in self.dependencies
            ],
            "singleton": self.singleton,
            "auto_init": self.auto_init,
            "phase": self.phase,
            "description": self.description,
            "initialized": self.initialized,
        }


def import_from_path(service_name: str, path: str) -> Callable[..., Any]:
    """Resolve ``package.module:attribute`` (or ``package.module.attribute``)."""
    if ":" in path:
        module_name, _, attr_path = path.partition(":")
    else:
        module_name, _, attr_path = path.rpartition(".")
    if not module_name or not attr_path:
        raise ImplementationNotFoundError(service_name, path)

    try:
        target: Any = importlib.import_module(module_name)
        for attr in attr_path.split("."):
            target = getattr(target, attr)
    except (ImportError, AttributeError) as e:
        raise ImplementationNotFoundError(service_name, path, cause=e) from e

    if not callable(target):
        raise ImplementationNotFoundError(service_name, path)
    return target

