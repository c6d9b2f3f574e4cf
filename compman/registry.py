"""
Registry Store - Durable record of installed components.

One JSON document holds the current record per component name, the
retired versions kept for rollback, and a per-name revision counter:

    {
        "schema": 1,
        "components": {"weather": {...}},
        "history": {"weather": [{...}, ...]},
        "revisions": {"weather": 3}
    }

Writers take an exclusive flock on a sidecar lock file around the whole
read-modify-write and replace the document atomically (temp file, fsync,
os.replace). Readers never lock: they parse whatever complete document is
in place. Nothing here touches install directories.
"""

import fcntl
import json
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from .config import CompmanConfig
from .errors import ConcurrentModification, IsolationError, RegistryCorruption
from .models import ComponentRecord, ComponentStatus

__all__ = ["RegistryStore", "SCHEMA_VERSION"]

logger = structlog.get_logger(__name__)

SCHEMA_VERSION = 1


@dataclass
class _Snapshot:
    components: dict[str, ComponentRecord] = field(default_factory=dict)
    history: dict[str, list[ComponentRecord]] = field(default_factory=dict)
    revisions: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema": SCHEMA_VERSION,
            "components": {n: r.to_dict() for n, r in sorted(self.components.items())},
            "history": {
                n: [r.to_dict() for r in records]
                for n, records in sorted(self.history.items())
                if records
            },
            "revisions": dict(sorted(self.revisions.items())),
        }


def _parse_record(data: Any, where: str) -> ComponentRecord:
    if not isinstance(data, dict):
        raise RegistryCorruption(f"{where}: record is not an object")
    try:
        record = ComponentRecord.from_dict(data)
    except KeyError as e:
        raise RegistryCorruption(f"{where}: missing field {e}") from e
    except ValueError as e:
        raise RegistryCorruption(f"{where}: {e}") from e
    for attr in ("name", "source_reference", "version", "install_path", "installed_at"):
        if not isinstance(getattr(record, attr), str) or not getattr(record, attr):
            raise RegistryCorruption(f"{where}: field '{attr}' must be a non-empty string")
    return record


def _parse_document(raw: Any) -> _Snapshot:
    """Validate document structure.

    Raises:
        RegistryCorruption: On any structural defect
    """
    if not isinstance(raw, dict):
        raise RegistryCorruption("registry root is not an object")
    if raw.get("schema") != SCHEMA_VERSION:
        raise RegistryCorruption(f"unsupported registry schema: {raw.get('schema')!r}")

    snapshot = _Snapshot()

    components = raw.get("components", {})
    if not isinstance(components, dict):
        raise RegistryCorruption("'components' is not an object")
    for name, data in components.items():
        record = _parse_record(data, f"components.{name}")
        if record.name != name:
            raise RegistryCorruption(
                f"components.{name}: record name '{record.name}' does not match key"
            )
        snapshot.components[name] = record

    history = raw.get("history", {})
    if not isinstance(history, dict):
        raise RegistryCorruption("'history' is not an object")
    for name, entries in history.items():
        if not isinstance(entries, list):
            raise RegistryCorruption(f"history.{name} is not a list")
        snapshot.history[name] = [
            _parse_record(entry, f"history.{name}[{i}]") for i, entry in enumerate(entries)
        ]

    revisions = raw.get("revisions", {})
    if not isinstance(revisions, dict) or not all(
        isinstance(v, int) and not isinstance(v, bool) for v in revisions.values()
    ):
        raise RegistryCorruption("'revisions' must map names to integers")
    snapshot.revisions = dict(revisions)

    return snapshot


class RegistryStore:
    """File-backed registry of component records.

    Example:
        store = RegistryStore.from_config(config)
        store.upsert(record)
        if store.is_installed("weather"):
            print(store.find("weather").version)
    """

    def __init__(self, path: Path | str, lock_path: Path | str | None = None) -> None:
        self.path = Path(path)
        self.lock_path = Path(lock_path) if lock_path else self.path.with_suffix(".lock")

    @classmethod
    def from_config(cls, config: CompmanConfig) -> "RegistryStore":
        return cls(config.registry_file, config.lock_file)

    # -- reads ---------------------------------------------------------------

    def _read(self) -> _Snapshot:
        try:
            content = self.path.read_text()
        except FileNotFoundError:
            return _Snapshot()
        try:
            raw = json.loads(content)
        except json.JSONDecodeError as e:
            raise RegistryCorruption(f"registry is not valid JSON: {e}") from e
        return _parse_document(raw)

    def find(self, name: str) -> ComponentRecord | None:
        """Current record for a name, in whatever status."""
        return self._read().components.get(name)

    def all(self) -> list[ComponentRecord]:
        """All current records ordered by name."""
        components = self._read().components
        return [components[name] for name in sorted(components)]

    def is_installed(self, name: str) -> bool:
        record = self.find(name)
        return record is not None and record.status is ComponentStatus.INSTALLED

    def history(self, name: str) -> list[ComponentRecord]:
        """Retired records for a name, oldest first."""
        return list(self._read().history.get(name, []))

    def revision(self, name: str) -> int:
        """Per-name write counter; 0 if the name was never written."""
        return self._read().revisions.get(name, 0)

    def find_with_revision(self, name: str) -> tuple[ComponentRecord | None, int]:
        """Current record and revision for a name from one read.

        Pass the revision as expected_revision when committing a change
        derived from the record.
        """
        snapshot = self._read()
        return snapshot.components.get(name), snapshot.revisions.get(name, 0)

    # -- writes --------------------------------------------------------------

    @contextmanager
    def _locked(self) -> Iterator[None]:
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.lock_path, "a+") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _write(self, snapshot: _Snapshot) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(snapshot.to_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def upsert(
        self,
        record: ComponentRecord,
        *,
        expected_revision: int | None = None,
        history: list[ComponentRecord] | None = None,
    ) -> int:
        """Replace the current record for record.name.

        Args:
            record: New current record
            expected_revision: If given, commit only when the name's revision
                still equals this value
            history: If given, replaces the name's retired records in the
                same commit

        Returns:
            The name's new revision

        Raises:
            ConcurrentModification: Revision moved since expected_revision
            IsolationError: install_path already owned by another component
            RegistryCorruption: Existing document is malformed
        """
        with self._locked():
            snapshot = self._read()
            current = snapshot.revisions.get(record.name, 0)
            if expected_revision is not None and current != expected_revision:
                logger.warning(
                    "registry_commit_conflict",
                    name=record.name,
                    expected=expected_revision,
                    actual=current,
                )
                raise ConcurrentModification(
                    f"'{record.name}' was modified by another process "
                    f"(revision {current}, expected {expected_revision})",
                    component=record.name,
                )

            for other in snapshot.components.values():
                if other.name != record.name and other.install_path == record.install_path:
                    raise IsolationError(
                        f"install path {record.install_path} is owned by '{other.name}'",
                        component=record.name,
                    )

            snapshot.components[record.name] = record
            if history is not None:
                snapshot.history[record.name] = list(history)
            snapshot.revisions[record.name] = current + 1
            self._write(snapshot)

        logger.debug(
            "registry_upsert",
            name=record.name,
            version=record.version,
            status=record.status.value,
            revision=current + 1,
        )
        return current + 1

    def remove(self, name: str) -> bool:
        """Drop a name's current record and history.

        Returns:
            False if no record existed (not an error)
        """
        with self._locked():
            snapshot = self._read()
            if name not in snapshot.components:
                return False
            del snapshot.components[name]
            snapshot.history.pop(name, None)
            # Revision survives so in-flight writers still see the change
            snapshot.revisions[name] = snapshot.revisions.get(name, 0) + 1
            self._write(snapshot)

        logger.debug("registry_remove", name=name)
        return True
