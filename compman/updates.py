"""
Update Policy Engine - Decide when to look for updates and what changed.

UpdatePolicy answers two questions without touching installation state:

    should_check()          is this an interactive human session worth a
                            network round-trip?
    compute_deltas(store)   which installed components have a newer stable
                            release, and how urgent is it?

UpdateChecker adds the enable switch and a small results cache
(update-cache.json) so the host can run a quick check on every start.
"""

import json
import os
import re
import sys
import tempfile
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, TextIO

import structlog

from .config import CompmanConfig
from .contracts import VersionSource
from .errors import ComponentError, RegistryCorruption
from .models import Priority, UpdateDelta
from .registry import RegistryStore
from .resolver import ManifestResolver, parse_version

__all__ = [
    "AUTOMATION_SIGNALS",
    "UpdateCache",
    "UpdateChecker",
    "UpdatePolicy",
    "detect_priority",
    "parse_interval",
]

logger = structlog.get_logger(__name__)

AUTOMATION_SIGNALS = (
    "CI",
    "CONTINUOUS_INTEGRATION",
    "GITHUB_ACTIONS",
    "TRAVIS",
    "CIRCLECI",
    "GITLAB_CI",
    "BUILDKITE",
    "JENKINS_URL",
    "COMPMAN_NO_INTERACTION",
)

DEFAULT_INTERVAL = timedelta(hours=6)
_INTERVAL_RE = re.compile(r"^(\d+)([hd])$")


def detect_priority(manifest: Mapping[str, Any]) -> Priority:
    """Classify a release from its manifest's explicit signals.

    "priority" wins when valid; otherwise a "security" flag beats a
    "breaking" flag. Anything else is normal.
    """
    priority = manifest.get("priority")
    if priority in ("normal", "security", "breaking"):
        return priority

    flags = manifest.get("flags") or []
    if isinstance(flags, list):
        lowered = {f.lower() for f in flags if isinstance(f, str)}
        if "security" in lowered:
            return "security"
        if "breaking" in lowered:
            return "breaking"
    return "normal"


def _isatty(stream: TextIO | None) -> bool:
    try:
        return stream is not None and stream.isatty()
    except (AttributeError, ValueError):
        return False


class UpdatePolicy:
    """Gate and compute update checks.

    Example:
        policy = UpdatePolicy(store, resolver, source)
        if policy.should_check():
            for delta in policy.compute_deltas(store):
                print(delta.component_name, delta.latest_version)
    """

    def __init__(
        self,
        store: RegistryStore,
        resolver: ManifestResolver,
        source: VersionSource,
        environ: Mapping[str, str] | None = None,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.source = source
        self.environ = os.environ if environ is None else environ
        self.stdin = sys.stdin if stdin is None else stdin
        self.stdout = sys.stdout if stdout is None else stdout

    def is_interactive(self) -> bool:
        return _isatty(self.stdin) and _isatty(self.stdout)

    def automation_signal(self) -> str | None:
        """Name of the first automation variable set, if any."""
        for name in AUTOMATION_SIGNALS:
            if self.environ.get(name):
                return name
        return None

    def is_test_context(self) -> bool:
        return bool(self.environ.get("PYTEST_CURRENT_TEST")) or (
            self.environ.get("COMPMAN_ENV") == "testing"
        )

    def should_check(self) -> bool:
        """Whether an update check is appropriate right now. Never does network I/O."""
        if not self.is_interactive():
            logger.debug("update_check_skipped", reason="not_interactive")
            return False

        signal = self.automation_signal()
        if signal:
            logger.debug("update_check_skipped", reason="automation", signal=signal)
            return False

        if self.is_test_context():
            logger.debug("update_check_skipped", reason="test_context")
            return False

        try:
            installed = any(r.is_installed for r in self.store.all())
        except RegistryCorruption as e:
            logger.warning("update_check_skipped", reason="registry_corrupt", error=str(e))
            return False
        if not installed:
            logger.debug("update_check_skipped", reason="no_components")
            return False
        return True

    def compute_deltas(self, registry: RegistryStore | None = None) -> list[UpdateDelta]:
        """Newer stable releases for every installed component.

        Components whose lookup fails are logged and left out.
        """
        registry = registry or self.store
        deltas = []
        for record in registry.all():
            if not record.is_installed:
                continue
            log = logger.bind(component=record.name)
            try:
                target = self.resolver.latest(record.name, record.source_reference)
            except ComponentError as e:
                log.warning("update_lookup_failed", error=str(e))
                continue

            latest, current = parse_version(target.version), parse_version(record.version)
            if latest is None or current is None or latest <= current:
                continue

            try:
                priority = detect_priority(
                    self.source.fetch_manifest(record.source_reference, target.version)
                )
            except ComponentError as e:
                log.warning("update_manifest_unavailable", version=target.version, error=str(e))
                priority = "normal"

            deltas.append(
                UpdateDelta(
                    component_name=record.name,
                    current_version=record.version,
                    latest_version=target.version,
                    priority=priority,
                )
            )
            log.info(
                "update_available",
                current=record.version,
                latest=target.version,
                priority=priority,
            )
        return deltas


def parse_interval(value: str) -> timedelta:
    """Parse "<n>h" / "<n>d"; anything else falls back to 6 hours."""
    match = _INTERVAL_RE.match(value.strip()) if isinstance(value, str) else None
    if not match:
        logger.warning("invalid_update_interval", value=value)
        return DEFAULT_INTERVAL
    amount, unit = int(match.group(1)), match.group(2)
    return timedelta(hours=amount) if unit == "h" else timedelta(days=amount)


class UpdateCache:
    """Last update check results, stored as JSON.

    {"last_check": "<iso timestamp>", "updates": [{...UpdateDelta...}]}
    """

    def __init__(self, path: Path, interval: str = "6h") -> None:
        self.path = Path(path)
        self.interval = parse_interval(interval)

    def load(self) -> dict[str, Any]:
        try:
            data = json.loads(self.path.read_text())
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as e:
            logger.warning("update_cache_unreadable", path=str(self.path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def save(self, deltas: list[UpdateDelta], now: datetime | None = None) -> None:
        now = now or datetime.now(timezone.utc)
        payload = {
            "last_check": now.isoformat(),
            "updates": [d.to_dict() for d in deltas],
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def last_check(self) -> datetime | None:
        raw = self.load().get("last_check")
        if not isinstance(raw, str):
            return None
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    def is_expired(self, now: datetime | None = None) -> bool:
        last = self.last_check()
        if last is None:
            return True
        now = now or datetime.now(timezone.utc)
        return now >= last + self.interval

    def cached_deltas(self) -> list[UpdateDelta]:
        deltas = []
        for item in self.load().get("updates") or []:
            try:
                deltas.append(UpdateDelta(**item))
            except TypeError:
                logger.warning("update_cache_entry_invalid", entry=item)
        return deltas


class UpdateChecker:
    """Cached, gated update checks for the host's startup path."""

    def __init__(self, policy: UpdatePolicy, cache: UpdateCache, enabled: bool = True) -> None:
        self.policy = policy
        self.cache = cache
        self.enabled = enabled

    @classmethod
    def from_config(cls, policy: UpdatePolicy, config: CompmanConfig) -> "UpdateChecker":
        return cls(
            policy,
            UpdateCache(config.update_cache_file, config.update_interval),
            enabled=config.update_check_enabled,
        )

    def should_check(self) -> bool:
        return self.enabled and self.cache.is_expired() and self.policy.should_check()

    def quick_check(self, force: bool = False) -> list[UpdateDelta]:
        """Cached deltas while fresh; otherwise compute and cache them."""
        if not force and not self.cache.is_expired():
            return self.cache.cached_deltas()

        deltas = self.policy.compute_deltas()
        self.cache.save(deltas)
        return deltas
