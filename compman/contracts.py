"""
Contracts - Protocols for the remote and process-level collaborators.

The lifecycle engine only talks to the outside world through these:
- VersionSource: read-only version listing and manifest lookup
- Fetcher: materialize a source tree at a ref into a directory
- DependencyInstaller: install requirements into a private directory
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

__all__ = ["DependencyInstaller", "Fetcher", "RemoteVersion", "VersionSource"]


@dataclass(frozen=True)
class RemoteVersion:
    """A tag offered by a source.

    published_at is an ISO-8601 string, or None when the source
    does not expose timestamps (plain tags).
    """

    tag: str
    published_at: str | None = None
    prerelease: bool = False


@runtime_checkable
class VersionSource(Protocol):
    """Read-only view of a remote component source."""

    def list_versions(self, source: str) -> list[RemoteVersion]:
        """All tags published for a source coordinate.

        Raises:
            FetchError: Source unreachable or not found
        """
        ...

    def fetch_manifest(self, source: str, ref: str) -> dict[str, Any]:
        """Raw manifest.json content at a ref.

        Raises:
            FetchError: Source unreachable, ref or manifest not found
        """
        ...


@runtime_checkable
class Fetcher(Protocol):
    """Materializes a component source tree."""

    def fetch(self, source: str, ref: str, dest: Path, timeout: float | None = None) -> None:
        """Write the tree for source@ref into dest (which does not exist yet).

        Raises:
            FetchError: On any failure, including timeout
        """
        ...


@runtime_checkable
class DependencyInstaller(Protocol):
    """Installs requirements into a private target directory."""

    strategy: str

    def install(self, requirements: list[str], target: Path, timeout: float | None = None) -> None:
        """Install requirements into target only.

        Raises:
            DependencyError: On any failure, including timeout
        """
        ...
