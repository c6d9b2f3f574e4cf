"""
Manifest Resolver - Turn a user identifier into a fetchable target.

Accepted identifier shapes:
    weather                 short name from the catalog, latest stable
    weather@1.2.0           short name, pinned
    acme/weather-tools      repository coordinate, latest stable
    acme/weather-tools@v2.0 repository coordinate, pinned

The grammar is checked before any remote lookup. Version selection uses
semantic-version ordering of tags; the publication timestamp only breaks
ties between tags that parse to the same version.
"""

import json
import re
from pathlib import Path

import structlog
from packaging.version import InvalidVersion, Version

from .contracts import RemoteVersion, VersionSource
from .errors import FetchError, InvalidIdentifier
from .models import ResolvedTarget

__all__ = [
    "ManifestResolver",
    "load_catalog",
    "parse_identifier",
    "parse_version",
    "select_latest",
]

logger = structlog.get_logger(__name__)

SHORT_NAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")
COORDINATE_RE = re.compile(r"^[a-z0-9]([_.-]?[a-z0-9]+)*/[a-z0-9]([_.-]?[a-z0-9]+)*$")
PIN_RE = re.compile(r"^v?[0-9A-Za-z][0-9A-Za-z.+-]*$")

MAX_SHORT_NAME = 50
MAX_COORDINATE = 100


def parse_version(tag: str) -> Version | None:
    """Parse a tag as a version ("v" prefix allowed); None if it is not one."""
    try:
        return Version(tag)
    except InvalidVersion:
        return None


def parse_identifier(identifier: str) -> tuple[str, str | None, str | None]:
    """Split and validate an identifier.

    Returns:
        (name, coordinate or None for short names, pin or None)

    Raises:
        InvalidIdentifier: If any part violates the grammar
    """
    if not isinstance(identifier, str) or not identifier:
        raise InvalidIdentifier("empty component identifier")
    if identifier.count("@") > 1:
        raise InvalidIdentifier(f"more than one version pin in '{identifier}'")

    base, sep, pin = identifier.partition("@")
    if sep and not pin:
        raise InvalidIdentifier(f"empty version pin in '{identifier}'")
    if pin and not PIN_RE.match(pin):
        raise InvalidIdentifier(f"invalid version pin '{pin}'")

    if "/" in base:
        if len(base) > MAX_COORDINATE:
            raise InvalidIdentifier(f"source coordinate too long (max {MAX_COORDINATE}): {base}")
        if not COORDINATE_RE.match(base):
            raise InvalidIdentifier(
                f"invalid source coordinate '{base}'. Must follow owner/repository naming."
            )
        return base.split("/", 1)[1], base, pin or None

    if len(base) > MAX_SHORT_NAME:
        raise InvalidIdentifier(f"component name too long (max {MAX_SHORT_NAME}): {base}")
    if not SHORT_NAME_RE.match(base):
        raise InvalidIdentifier(
            f"invalid component name '{base}'. "
            "Only alphanumeric characters, hyphens, and underscores are allowed."
        )
    return base, None, pin or None


def select_latest(versions: list[RemoteVersion]) -> RemoteVersion | None:
    """Highest stable semantic version; newest publication wins ties."""
    stable = []
    for rv in versions:
        parsed = parse_version(rv.tag)
        if parsed is None or parsed.is_prerelease or parsed.is_devrelease or rv.prerelease:
            continue
        stable.append((parsed, rv.published_at or "", rv))
    if not stable:
        return None
    return max(stable, key=lambda item: (item[0], item[1]))[2]


def _select_pinned(versions: list[RemoteVersion], pin: str) -> RemoteVersion | None:
    for rv in versions:
        if rv.tag == pin:
            return rv
    wanted = parse_version(pin)
    if wanted is None:
        return None
    matches = [rv for rv in versions if parse_version(rv.tag) == wanted]
    if not matches:
        return None
    return max(matches, key=lambda rv: rv.published_at or "")


def load_catalog(path: Path) -> dict[str, str]:
    """Read a short-name catalog file ({"name": "owner/repo"}).

    Entries whose name or coordinate break the grammar are skipped.
    """
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        logger.warning("catalog_parse_error", path=str(path), error=str(e))
        return {}
    if not isinstance(data, dict):
        logger.warning("catalog_not_object", path=str(path))
        return {}

    catalog = {}
    for name, source in data.items():
        if (
            isinstance(source, str)
            and SHORT_NAME_RE.match(name)
            and len(name) <= MAX_SHORT_NAME
            and COORDINATE_RE.match(source)
        ):
            catalog[name] = source
        else:
            logger.warning("catalog_entry_invalid", name=name, source=source)
    return catalog


class ManifestResolver:
    """Resolves identifiers against a catalog and a remote version source.

    Example:
        resolver = ManifestResolver(GitHubVersionSource(config), {"weather": "acme/weather"})
        target = resolver.resolve("weather")
        print(target.version)
    """

    def __init__(self, source: VersionSource, catalog: dict[str, str] | None = None) -> None:
        self.source = source
        self.catalog = dict(catalog or {})

    def resolve(self, identifier: str) -> ResolvedTarget:
        """Resolve an identifier to a concrete target.

        Raises:
            InvalidIdentifier: Malformed or unknown short name (no I/O done)
            FetchError: Source lookup failed or no eligible version
        """
        name, coordinate, pin = parse_identifier(identifier)
        if coordinate is None:
            coordinate = self.catalog.get(name)
            if coordinate is None:
                raise InvalidIdentifier(
                    f"unknown component '{name}'. Use owner/repository or add it to the catalog.",
                    component=name,
                )

        versions = self.source.list_versions(coordinate)
        if pin:
            chosen = _select_pinned(versions, pin)
            if chosen is None:
                raise FetchError(f"version '{pin}' not found in {coordinate}", component=name)
            target = ResolvedTarget(name=name, source=coordinate, version=chosen.tag, pinned=True)
        else:
            target = self._latest_from(name, coordinate, versions)

        logger.debug("identifier_resolved", identifier=identifier, target=str(target))
        return target

    def latest(self, name: str, source: str) -> ResolvedTarget:
        """Latest stable target for an already known name/source pair."""
        return self._latest_from(name, source, self.source.list_versions(source))

    def _latest_from(self, name: str, source: str, versions: list[RemoteVersion]) -> ResolvedTarget:
        chosen = select_latest(versions)
        if chosen is None:
            raise FetchError(f"no stable version published for {source}", component=name)
        return ResolvedTarget(name=name, source=source, version=chosen.tag)
