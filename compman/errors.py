"""
Errors - Failure taxonomy for component lifecycle operations.

Every error names the stage that failed. Installer errors are raised only
after the partial install has been purged, so callers never clean up the
filesystem themselves.
"""

__all__ = [
    "ComponentError",
    "ComponentNotFound",
    "ConcurrentModification",
    "DependencyError",
    "FetchError",
    "InvalidIdentifier",
    "IsolationError",
    "NoRollbackTarget",
    "RegistryCorruption",
    "VerificationError",
]


class ComponentError(Exception):
    """Base class for lifecycle errors."""

    stage = "lifecycle"

    def __init__(self, message: str, *, component: str | None = None) -> None:
        super().__init__(message)
        self.component = component

    def to_dict(self) -> dict[str, str | None]:
        return {
            "error": type(self).__name__,
            "stage": self.stage,
            "component": self.component,
            "message": str(self),
        }


class InvalidIdentifier(ComponentError):
    """Identifier does not match the accepted grammar. Raised before any I/O."""

    stage = "resolve"


class FetchError(ComponentError):
    """Source unreachable, not found, or timed out."""

    stage = "fetch"


class DependencyError(ComponentError):
    """A component's private dependency installation failed."""

    stage = "dependencies"


class IsolationError(ComponentError):
    """Install path could not be allocated, written or purged."""

    stage = "isolation"


class VerificationError(ComponentError):
    """A freshly installed tree failed manifest / entry point checks."""

    stage = "verify"


class ConcurrentModification(ComponentError):
    """Another process committed the same component first."""

    stage = "commit"


class NoRollbackTarget(ComponentError):
    """No retained prior install exists for rollback."""

    stage = "rollback"


class ComponentNotFound(ComponentError):
    """Operation needs an installed component that is not there."""

    stage = "lookup"


class RegistryCorruption(ComponentError):
    """A persisted record failed structural validation on read."""

    stage = "registry"
