"""
servicegraph - Core Module

Foundational pieces shared by the container and its front ends:
- Unified error handling (errors)
- Manifest loading (manifest)
- Application lifecycle around the bootstrap sweep (bootstrap)

Only the error taxonomy is re-exported here, since the container itself
depends on it. Import the rest from their modules:

    from core import CircularDependencyError
    from core.manifest import load_manifest
    from core.bootstrap import Application, bootstrap
"""

from core.errors import (
    CircularDependencyError,
    ContainerError,
    DuplicateServiceError,
    ErrorContext,
    ErrorSeverity,
    ImplementationNotFoundError,
    InstantiationError,
    InvalidDescriptorError,
    ManifestError,
    NotAutoInitError,
    NotYetInitializedError,
    RegistryUnavailableError,
    RegistryValidationError,
    ServiceNotFoundError,
)


__all__ = [
    "CircularDependencyError",
    "ContainerError",
    "DuplicateServiceError",
    "ErrorContext",
    "ErrorSeverity",
    "ImplementationNotFoundError",
    "InstantiationError",
    "InvalidDescriptorError",
    "ManifestError",
    "NotAutoInitError",
    "NotYetInitializedError",
    "RegistryUnavailableError",
    "RegistryValidationError",
    "ServiceNotFoundError",
]
