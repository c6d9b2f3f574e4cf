"""
Component Manager - Public lifecycle API.

Coordinates the resolver, the isolated installer, the registry store and
the command binder:

    install(identifier)   resolve, isolate, then commit as installed
    update(name)          new version into a new path, verify, swap, retire old
    uninstall(name)       mark uninstalled, purge files (idempotent)
    rollback(name)        re-activate the newest retained prior install
    list() / is_installed(name) / validate(name)

Ordering rules:
- Nothing is committed to the registry until the new install is complete
  on disk; a failure before commit leaves the registry untouched.
- A live install path is never written to. Updates always go to a fresh
  path and the old one stays authoritative until the commit succeeds.
- Every commit carries the per-name revision read together with the
  record it was derived from, before any remote or install work. If
  another process committed in between, this attempt purges its own path
  and raises ConcurrentModification.
- Superseded installs stay on disk (up to keep_versions) as rollback
  targets; older ones are purged only after the commit.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path

import structlog

from .binder import BindResult, CommandBinder
from .config import CompmanConfig
from .errors import (
    ComponentError,
    ComponentNotFound,
    IsolationError,
    NoRollbackTarget,
    VerificationError,
)
from .installer import DESCRIPTOR_FILE, IsolatedInstaller, load_manifest
from .models import ComponentRecord, ComponentStatus, InstallArtifact, ResolvedTarget, utcnow
from .registry import RegistryStore
from .resolver import ManifestResolver, parse_version

__all__ = ["ComponentManager", "HISTORY_LIMIT", "ValidationReport"]

logger = structlog.get_logger(__name__)

# Retired records kept for audit, whether or not their files remain
HISTORY_LIMIT = 20


@dataclass
class ValidationReport:
    name: str
    version: str | None = None
    problems: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems


def _is_newer(candidate: str, current: str) -> bool:
    new, old = parse_version(candidate), parse_version(current)
    if new is None or old is None:
        return candidate != current
    return new > old


class ComponentManager:
    """Component lifecycle orchestrator.

    Built once by the entry point with its collaborators:

        manager = ComponentManager(
            store=RegistryStore.from_config(config),
            resolver=ManifestResolver(source, catalog),
            installer=IsolatedInstaller.from_config(config, GitFetcher(), UvDependencyInstaller()),
            binder=CommandBinder(),
            config=config,
        )
        manager.install("acme/weather")
    """

    def __init__(
        self,
        store: RegistryStore,
        resolver: ManifestResolver,
        installer: IsolatedInstaller,
        binder: CommandBinder | None = None,
        config: CompmanConfig | None = None,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.installer = installer
        self.binder = binder or CommandBinder()
        self.keep_versions = max(0, config.keep_versions if config else 1)

    # -- read-only -----------------------------------------------------------

    def list(self) -> list[ComponentRecord]:
        return self.store.all()

    def is_installed(self, name: str) -> bool:
        return self.store.is_installed(name)

    def validate(self, name: str) -> ValidationReport:
        """Check an installed component without changing anything."""
        record = self.store.find(name)
        if record is None:
            return ValidationReport(name, problems=["not registered"])

        report = ValidationReport(name, version=record.version)
        if record.status is not ComponentStatus.INSTALLED:
            report.problems.append(f"status is {record.status.value}")
            return report
        if not record.path.is_dir():
            report.problems.append(f"install path {record.install_path} is missing")
            return report

        descriptor = self.installer.read_descriptor(record.path)
        if descriptor is None:
            report.problems.append(f"{DESCRIPTOR_FILE} missing or unreadable")
        elif descriptor.get("name") != record.name or descriptor.get("version") != record.version:
            report.problems.append(f"{DESCRIPTOR_FILE} does not match the registry record")

        try:
            self.installer.verify(record.path)
        except VerificationError as e:
            report.problems.append(str(e))
        return report

    # -- install / update ----------------------------------------------------

    def install(self, identifier: str, timeout: float | None = None) -> ComponentRecord:
        """Install a component, or update it if already installed.

        Raises:
            InvalidIdentifier, FetchError, DependencyError, IsolationError,
            VerificationError, ConcurrentModification
        """
        target = self.resolver.resolve(identifier)
        existing, revision = self.store.find_with_revision(target.name)

        if existing is not None and existing.is_installed:
            if existing.source_reference != target.source:
                raise IsolationError(
                    f"'{target.name}' is already installed from {existing.source_reference}",
                    component=target.name,
                )
            logger.info(
                "install_as_update",
                component=target.name,
                installed=existing.version,
                target=target.version,
            )
            return self._replace(existing, revision, target, timeout)

        logger.info(
            "component_installing",
            component=target.name,
            version=target.version,
            status=ComponentStatus.INSTALLING.value,
        )
        artifact = self.installer.install(target, timeout)
        record = self._record_for(artifact)

        history = self.store.history(target.name)
        evict: list[ComponentRecord] = []
        if existing is not None:
            history, evict = self._retire(history, existing)

        self._commit(record, revision, history, artifact)
        self._bind(record)
        self._purge_records(evict)

        logger.info("component_installed", component=record.name, version=record.version)
        return record

    def update(self, name: str, timeout: float | None = None) -> ComponentRecord:
        """Move an installed component to its latest stable version.

        Returns the current record unchanged when already up to date.

        Raises:
            ComponentNotFound: name is not installed
            FetchError, DependencyError, IsolationError, VerificationError,
            ConcurrentModification: old version stays installed
        """
        existing, revision = self.store.find_with_revision(name)
        if existing is None or not existing.is_installed:
            raise ComponentNotFound(f"'{name}' is not installed", component=name)

        target = self.resolver.latest(name, existing.source_reference)
        if not _is_newer(target.version, existing.version):
            logger.info("component_up_to_date", component=name, version=existing.version)
            return existing
        return self._replace(existing, revision, target, timeout)

    def _replace(
        self,
        existing: ComponentRecord,
        revision: int,
        target: ResolvedTarget,
        timeout: float | None,
    ) -> ComponentRecord:
        if target.version == existing.version:
            logger.info("component_up_to_date", component=existing.name, version=existing.version)
            return existing

        logger.info(
            "component_updating",
            component=existing.name,
            from_version=existing.version,
            to_version=target.version,
            status=ComponentStatus.INSTALLING.value,
        )
        artifact = self.installer.install(target, timeout)

        try:
            self.installer.verify(artifact.path)
        except VerificationError as e:
            e.component = existing.name
            logger.warning(
                "update_verification_failed",
                component=existing.name,
                version=target.version,
                error=str(e),
            )
            self._purge_quietly(artifact)
            raise

        record = self._record_for(artifact)
        history, evict = self._retire(self.store.history(existing.name), existing)
        self._commit(record, revision, history, artifact)

        self.binder.unbind(existing.name)
        self._bind(record)
        self._purge_records(evict)

        logger.info(
            "component_updated",
            component=record.name,
            from_version=existing.version,
            to_version=record.version,
        )
        return record

    # -- uninstall / rollback ------------------------------------------------

    def uninstall(self, name: str, keep_files: bool = False) -> ComponentRecord | None:
        """Mark a component uninstalled and purge its files.

        Args:
            name: Component name
            keep_files: Leave the install on disk so rollback can restore it

        Returns:
            The uninstalled record, or None when there was nothing to do

        Raises:
            ConcurrentModification: Registry changed while uninstalling
        """
        existing, revision = self.store.find_with_revision(name)
        if existing is None or existing.status is ComponentStatus.UNINSTALLED:
            logger.debug("uninstall_noop", component=name)
            return None

        retired = existing.with_status(ComponentStatus.UNINSTALLED)
        self.store.upsert(retired, expected_revision=revision)
        self.binder.unbind(name)

        if not keep_files:
            self._purge_quietly(retired.path)

        logger.info("component_uninstalled", component=name, version=existing.version)
        return retired

    def rollback(self, name: str) -> ComponentRecord:
        """Re-activate the newest retained prior install of a component.

        Raises:
            NoRollbackTarget: No retired or uninstalled record with files left
            ConcurrentModification: Registry changed while rolling back
        """
        current, revision = self.store.find_with_revision(name)
        history = self.store.history(name)

        candidates = list(reversed(history))
        if current is not None and current.status is ComponentStatus.UNINSTALLED:
            candidates.insert(0, current)

        chosen = next((c for c in candidates if self._usable(c)), None)
        if chosen is None:
            raise NoRollbackTarget(f"no retained prior install for '{name}'", component=name)

        remaining = [h for h in history if h.install_path != chosen.install_path]
        evict: list[ComponentRecord] = []
        if current is not None and current.install_path != chosen.install_path:
            remaining, evict = self._retire(remaining, current)

        record = replace(chosen, status=ComponentStatus.INSTALLED, installed_at=utcnow())
        self.store.upsert(record, expected_revision=revision, history=remaining)

        self.binder.unbind(name)
        self._bind(record)
        self._purge_records(evict)

        logger.info(
            "component_rolled_back",
            component=name,
            from_version=current.version if current else None,
            to_version=record.version,
        )
        return record

    # -- helpers -------------------------------------------------------------

    def _record_for(self, artifact: InstallArtifact) -> ComponentRecord:
        return ComponentRecord(
            name=artifact.name,
            source_reference=artifact.source,
            version=artifact.version,
            install_path=str(artifact.path),
            status=ComponentStatus.INSTALLED,
            metadata=artifact.manifest.to_metadata(),
        )

    def _usable(self, record: ComponentRecord) -> bool:
        if not record.path.is_dir():
            return False
        try:
            load_manifest(record.path / "src")
        except VerificationError:
            return False
        return True

    def _retire(
        self, history: list[ComponentRecord], record: ComponentRecord
    ) -> tuple[list[ComponentRecord], list[ComponentRecord]]:
        """Append record to history and pick installs that fall out of retention.

        Returns:
            (new history, records whose files should be purged after commit)
        """
        history = [h for h in history if h.install_path != record.install_path]
        history.append(record.with_status(ComponentStatus.UNINSTALLED))

        on_disk = [h for h in history if h.path.exists()]
        keep = self.keep_versions
        evict = on_disk[:-keep] if keep else on_disk
        return history[-HISTORY_LIMIT:], evict

    def _commit(
        self,
        record: ComponentRecord,
        revision: int,
        history: list[ComponentRecord],
        artifact: InstallArtifact,
    ) -> None:
        try:
            self.store.upsert(record, expected_revision=revision, history=history)
        except ComponentError as e:
            logger.warning("commit_failed", component=record.name, error=str(e))
            self._purge_quietly(artifact)
            raise

    def _bind(self, record: ComponentRecord) -> BindResult:
        return self.binder.bind(record)

    def _purge_records(self, records: list[ComponentRecord]) -> None:
        for record in records:
            self._purge_quietly(record.path)

    def _purge_quietly(self, target: InstallArtifact | Path) -> None:
        try:
            self.installer.purge(target)
        except IsolationError as e:
            logger.error("purge_failed", target=str(getattr(target, "path", target)), error=str(e))
