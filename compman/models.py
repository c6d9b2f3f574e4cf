"""
Models - Records, targets, artifacts and manifests.

ComponentRecord is the persisted unit of the registry. The remaining
types are transient values passed between resolver, installer and manager.
"""

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "CommandSpec",
    "ComponentManifest",
    "ComponentRecord",
    "ComponentStatus",
    "InstallArtifact",
    "Priority",
    "ResolvedTarget",
    "UpdateDelta",
    "utcnow",
]

Priority = Literal["normal", "security", "breaking"]


def utcnow() -> str:
    """Current UTC time as ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class ComponentStatus(str, Enum):
    INSTALLING = "installing"
    INSTALLED = "installed"
    FAILED = "failed"
    UNINSTALLED = "uninstalled"


@dataclass(frozen=True)
class ComponentRecord:
    """One installed (or retired) component version."""

    name: str
    source_reference: str
    version: str
    install_path: str
    status: ComponentStatus
    metadata: dict[str, Any] = field(default_factory=dict)
    installed_at: str = field(default_factory=utcnow)

    @property
    def path(self) -> Path:
        return Path(self.install_path)

    @property
    def is_installed(self) -> bool:
        return self.status is ComponentStatus.INSTALLED

    def with_status(self, status: ComponentStatus) -> "ComponentRecord":
        return replace(self, status=status)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ComponentRecord":
        """Build from persisted form.

        Raises:
            KeyError: If a field is missing
            ValueError: If status is unknown
        """
        return cls(
            name=data["name"],
            source_reference=data["source_reference"],
            version=data["version"],
            install_path=data["install_path"],
            status=ComponentStatus(data["status"]),
            metadata=dict(data.get("metadata") or {}),
            installed_at=data["installed_at"],
        )


class CommandSpec(BaseModel):
    """A command declaration as written in a manifest.

    Kept loose on purpose: the binder validates each entry individually so
    one malformed command does not reject the whole manifest.
    """

    model_config = ConfigDict(extra="allow")

    name: str = ""
    summary: str = ""
    entry_point: str = ""


class ComponentManifest(BaseModel):
    """Parsed manifest.json of a component source.

    Required fields:
        name, version, description, commands

    Optional fields:
        dependencies: PEP 508 requirement strings installed privately
        priority: Explicit update priority of this release
        flags: Release flags; "security" and "breaking" are recognized
    """

    model_config = ConfigDict(extra="allow")

    name: str
    version: str
    description: str
    commands: list[CommandSpec]
    dependencies: list[str] = Field(default_factory=list)
    priority: Priority | None = None
    flags: list[str] = Field(default_factory=list)

    def to_metadata(self) -> dict[str, Any]:
        """Opaque metadata carried on the registry record."""
        return self.model_dump(mode="json", exclude={"name", "version"})


@dataclass(frozen=True)
class ResolvedTarget:
    """A concrete (source, version) pair for a component name."""

    name: str
    source: str
    version: str
    pinned: bool = False

    def __str__(self) -> str:
        return f"{self.name} ({self.source}@{self.version})"


@dataclass(frozen=True)
class InstallArtifact:
    """A completed isolated install that is not yet committed."""

    name: str
    version: str
    source: str
    path: Path
    manifest: ComponentManifest
    descriptor: dict[str, Any]

    @property
    def source_dir(self) -> Path:
        return self.path / "src"


@dataclass(frozen=True)
class UpdateDelta:
    component_name: str
    current_version: str
    latest_version: str
    priority: Priority = "normal"

    def to_dict(self) -> dict[str, str]:
        return asdict(self)
