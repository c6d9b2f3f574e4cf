"""
Isolated Installer - Fetch a component into a private, versioned directory.

Install layout (one directory per attempt, never reused):

    <components_dir>/<name>/<version>-<utc stamp>-<random>/
        src/             fetched source tree (manifest.json at its root)
        deps/            private dependency tree
        isolation.json   isolation descriptor

Everything happens inside the freshly allocated directory and no lock is
held. Any failure deletes the whole directory before the error propagates,
so a failed attempt leaves nothing behind on disk.
"""

import json
import os
import re
import secrets
import shutil
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from .binder import module_file_for
from .config import CompmanConfig
from .contracts import DependencyInstaller, Fetcher
from .deps import normalize_dep_name, validate_requirements
from .errors import (
    ComponentError,
    DependencyError,
    FetchError,
    IsolationError,
    VerificationError,
)
from .models import (
    ComponentManifest,
    ComponentStatus,
    InstallArtifact,
    ResolvedTarget,
    utcnow,
)

__all__ = ["DESCRIPTOR_FILE", "MANIFEST_FILE", "IsolatedInstaller", "load_manifest"]

logger = structlog.get_logger(__name__)

MANIFEST_FILE = "manifest.json"
DESCRIPTOR_FILE = "isolation.json"

_UNSAFE_CHARS = re.compile(r"[^0-9A-Za-z.+_-]")


def load_manifest(source_dir: Path) -> ComponentManifest:
    """Parse and validate src/manifest.json.

    Raises:
        VerificationError: Manifest missing, not JSON, or incomplete
    """
    manifest_path = source_dir / MANIFEST_FILE
    try:
        data = json.loads(manifest_path.read_text())
    except FileNotFoundError as e:
        raise VerificationError(f"no {MANIFEST_FILE} in {source_dir}") from e
    except json.JSONDecodeError as e:
        raise VerificationError(f"{manifest_path} is not valid JSON: {e}") from e
    try:
        return ComponentManifest.model_validate(data)
    except ValidationError as e:
        raise VerificationError(f"{manifest_path} is incomplete: {e}") from e


class _Deadline:
    """Splits one caller timeout across fetch and dependency install."""

    def __init__(self, timeout: float | None) -> None:
        self._end = time.monotonic() + timeout if timeout is not None else None

    def remaining(self, error: type[ComponentError]) -> float | None:
        if self._end is None:
            return None
        left = self._end - time.monotonic()
        if left <= 0:
            raise error("install timed out")
        return left


class IsolatedInstaller:
    """Installs components into isolated directories.

    Example:
        installer = IsolatedInstaller(config.components_dir, GitFetcher(), UvDependencyInstaller())
        artifact = installer.install(target, timeout=120)
        ...
        installer.purge(artifact)
    """

    def __init__(
        self,
        components_dir: Path,
        fetcher: Fetcher,
        dependencies: DependencyInstaller,
        default_timeout: float | None = None,
    ) -> None:
        self.components_dir = Path(components_dir)
        self.fetcher = fetcher
        self.dependencies = dependencies
        self.default_timeout = default_timeout

    @classmethod
    def from_config(
        cls, config: CompmanConfig, fetcher: Fetcher, dependencies: DependencyInstaller
    ) -> "IsolatedInstaller":
        return cls(config.components_dir, fetcher, dependencies, config.fetch_timeout)

    # -- paths ---------------------------------------------------------------

    def _contained(self, path: Path) -> Path:
        """Resolve path and make sure it lives under components_dir."""
        resolved = path.resolve()
        if not resolved.is_relative_to(self.components_dir.resolve()):
            raise IsolationError(f"{path} is outside the component storage root")
        return resolved

    def allocate(self, name: str, version: str) -> Path:
        """Create a never-before-used directory for name@version.

        Raises:
            IsolationError: Collision, escape from the storage root, or OS error
        """
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
        leaf = f"{_UNSAFE_CHARS.sub('_', version)}-{stamp}-{secrets.token_hex(4)}"
        path = self.components_dir / name / leaf
        self._contained(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.mkdir()
        except FileExistsError as e:
            raise IsolationError(f"install path already exists: {path}", component=name) from e
        except OSError as e:
            raise IsolationError(f"cannot allocate {path}: {e}", component=name) from e
        logger.debug("install_path_allocated", component=name, path=str(path))
        return path

    # -- install -------------------------------------------------------------

    def install(self, target: ResolvedTarget, timeout: float | None = None) -> InstallArtifact:
        """Fetch, isolate and install dependencies for target.

        Raises:
            FetchError: Source could not be fetched or has no valid manifest
            DependencyError: Private dependency install failed
            IsolationError: Path allocation or filesystem failure
        """
        timeout = timeout if timeout is not None else self.default_timeout
        deadline = _Deadline(timeout)
        log = logger.bind(component=target.name, version=target.version)

        path = self.allocate(target.name, target.version)
        try:
            self._write_descriptor(path, target, ComponentStatus.INSTALLING, [])

            source_dir = path / "src"
            self.fetcher.fetch(
                target.source, target.version, source_dir, timeout=deadline.remaining(FetchError)
            )
            try:
                manifest = load_manifest(source_dir)
            except VerificationError as e:
                raise FetchError(str(e), component=target.name) from e

            if manifest.version.lstrip("v") != target.version.lstrip("v"):
                log.warning("manifest_version_mismatch", manifest_version=manifest.version)

            requirements = validate_requirements(manifest.dependencies)
            self.dependencies.install(
                requirements, path / "deps", timeout=deadline.remaining(DependencyError)
            )
            descriptor = self._write_descriptor(
                path, target, ComponentStatus.INSTALLED, requirements
            )
        except ComponentError as e:
            self._purge_after_failure(path, e)
            if e.component is None:
                e.component = target.name
            raise
        except OSError as e:
            error = IsolationError(f"filesystem error in {path}: {e}", component=target.name)
            self._purge_after_failure(path, error)
            raise error from e

        log.info("component_isolated", path=str(path), dependencies=len(requirements))
        return InstallArtifact(
            name=target.name,
            version=target.version,
            source=target.source,
            path=path,
            manifest=manifest,
            descriptor=descriptor,
        )

    def _purge_after_failure(self, path: Path, error: ComponentError) -> None:
        logger.warning(
            "install_failed",
            path=str(path),
            stage=error.stage,
            error=str(error),
            status=ComponentStatus.FAILED.value,
        )
        try:
            self.purge(path)
        except IsolationError as purge_error:
            logger.error("purge_after_failure_failed", path=str(path), error=str(purge_error))

    def _write_descriptor(
        self,
        path: Path,
        target: ResolvedTarget,
        status: ComponentStatus,
        requirements: list[str],
    ) -> dict[str, Any]:
        descriptor = {
            "strategy": self.dependencies.strategy,
            "name": target.name,
            "version": target.version,
            "source": target.source,
            "status": status.value,
            "python": f"{sys.version_info.major}.{sys.version_info.minor}",
            "dependencies": requirements,
            "packages": sorted({normalize_dep_name(d) for d in requirements}),
            "created_at": utcnow(),
        }
        tmp = path / f".{DESCRIPTOR_FILE}.tmp"
        tmp.write_text(json.dumps(descriptor, indent=2))
        os.replace(tmp, path / DESCRIPTOR_FILE)
        return descriptor

    # -- inspection ----------------------------------------------------------

    def read_descriptor(self, path: Path | str) -> dict[str, Any] | None:
        """Isolation descriptor of an install, or None if absent/unreadable."""
        try:
            return json.loads((Path(path) / DESCRIPTOR_FILE).read_text())
        except (FileNotFoundError, json.JSONDecodeError):
            return None

    def verify(self, path: Path | str) -> ComponentManifest:
        """Check an install is usable: manifest valid, entry points present.

        Raises:
            VerificationError: On the first problem found
        """
        source_dir = Path(path) / "src"
        manifest = load_manifest(source_dir)
        for command in manifest.commands:
            module_file = module_file_for(source_dir, command.entry_point)
            if module_file is None:
                raise VerificationError(
                    f"command '{command.name}' entry point '{command.entry_point}' "
                    f"does not resolve inside {source_dir}"
                )
        return manifest

    # -- removal -------------------------------------------------------------

    def purge(self, artifact: InstallArtifact | Path | str) -> bool:
        """Delete an install tree and its per-name directory once empty.

        Returns:
            False if there was nothing to delete

        Raises:
            IsolationError: Path outside the storage root or deletion failed
        """
        path = artifact.path if isinstance(artifact, InstallArtifact) else Path(artifact)
        resolved = self._contained(path)
        if not resolved.exists():
            return False

        try:
            shutil.rmtree(resolved)
        except OSError as e:
            raise IsolationError(f"could not purge {path}: {e}") from e

        parent = resolved.parent
        if parent != self.components_dir.resolve():
            try:
                parent.rmdir()
            except OSError:
                pass  # Other versions still present

        logger.info("install_purged", path=str(path))
        return True
