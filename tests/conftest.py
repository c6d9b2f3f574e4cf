"""Shared test fixtures."""

import hashlib
import json
import tempfile
import threading
from pathlib import Path

import pytest

from compman.binder import CommandBinder
from compman.config import CompmanConfig
from compman.contracts import RemoteVersion
from compman.errors import DependencyError, FetchError
from compman.installer import IsolatedInstaller
from compman.manager import ComponentManager
from compman.models import ComponentRecord, ComponentStatus
from compman.registry import RegistryStore
from compman.resolver import ManifestResolver

WEATHER = "acme/weather"


def make_manifest(name: str = "weather", version: str = "1.2.0", **extra) -> dict:
    """Build a valid manifest.json payload."""
    manifest = {
        "name": name,
        "version": version,
        "description": f"{name} component",
        "commands": [
            {
                "name": f"{name}:today",
                "summary": "Today's report",
                "entry_point": f"{name.replace('-', '_')}_cli:today",
            }
        ],
    }
    manifest.update(extra)
    return manifest


def make_record(root: Path, name: str = "weather", version: str = "1.0.0", **overrides) -> ComponentRecord:
    """Build a registry record pointing under root."""
    fields = {
        "name": name,
        "source_reference": f"acme/{name}",
        "version": version,
        "install_path": str(root / name / version),
        "status": ComponentStatus.INSTALLED,
        "metadata": {"description": f"{name} component"},
    }
    fields.update(overrides)
    return ComponentRecord(**fields)


def tree_hash(path: Path) -> str:
    """Content hash of every file under path."""
    digest = hashlib.sha256()
    for file in sorted(p for p in path.rglob("*") if p.is_file()):
        digest.update(str(file.relative_to(path)).encode())
        digest.update(file.read_bytes())
    return digest.hexdigest()


class FakeRemote:
    """In-memory source repositories.

    Serves as both the version source and the fetcher, so a published
    release is visible to resolution and installation alike.
    """

    def __init__(self):
        self.versions: dict[str, list[RemoteVersion]] = {}
        self.manifests: dict[tuple[str, str], dict] = {}
        self.fetch_failures: set[str] = set()
        self.listing_failures: set[str] = set()
        self.without_modules: set[str] = set()
        self.barrier: threading.Barrier | None = None
        self.fetches: list[tuple[str, str]] = []
        self.listings = 0

    def publish(self, source, tag, manifest=None, published_at=None, prerelease=False):
        name = source.split("/", 1)[1]
        self.versions.setdefault(source, []).append(
            RemoteVersion(tag=tag, published_at=published_at, prerelease=prerelease)
        )
        self.manifests[(source, tag)] = manifest or make_manifest(name, tag.lstrip("v"))

    # VersionSource

    def list_versions(self, source):
        self.listings += 1
        if source in self.listing_failures:
            raise FetchError(f"not found: {source}")
        return list(self.versions.get(source, []))

    def fetch_manifest(self, source, ref):
        try:
            return self.manifests[(source, ref)]
        except KeyError:
            raise FetchError(f"not found: {source}@{ref}") from None

    # Fetcher

    def fetch(self, source, ref, dest, timeout=None):
        self.fetches.append((source, ref))
        if self.barrier is not None:
            self.barrier.wait(timeout=10)
        if ref in self.fetch_failures:
            raise FetchError(f"could not fetch {source}@{ref}")

        manifest = self.fetch_manifest(source, ref)
        dest.mkdir(parents=True)
        (dest / "manifest.json").write_text(json.dumps(manifest))
        if ref in self.without_modules:
            return
        for command in manifest.get("commands", []):
            module = command["entry_point"].split(":", 1)[0]
            attr = command["entry_point"].split(":", 1)[1]
            module_file = dest / (module.replace(".", "/") + ".py")
            module_file.parent.mkdir(parents=True, exist_ok=True)
            module_file.write_text(f"def {attr}():\n    return '{manifest['name']} {ref}'\n")


class FakeDependencyInstaller:
    """Records requested installs instead of running uv."""

    strategy = "fake"

    def __init__(self):
        self.calls: list[tuple[list[str], Path]] = []
        self.fail = False

    def install(self, requirements, target, timeout=None):
        self.calls.append((list(requirements), target))
        if self.fail:
            raise DependencyError("dependency install failed: no matching distribution")
        target.mkdir(parents=True, exist_ok=True)
        for requirement in requirements:
            (target / f"{requirement.split('>')[0].split('=')[0]}.txt").write_text(requirement)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def config(temp_dir):
    """Create a test configuration with temp directory."""
    return CompmanConfig(
        runtime_dir=temp_dir,
        log_level="DEBUG",
        fetch_timeout=30.0,
        keep_versions=1,
        update_check_enabled=True,
        update_interval="6h",
        github_token=None,
    )


@pytest.fixture
def remote():
    """Remote with weather 1.2.0 published."""
    remote = FakeRemote()
    remote.publish(WEATHER, "1.2.0", published_at="2026-01-10T00:00:00Z")
    return remote


@pytest.fixture
def dependencies():
    return FakeDependencyInstaller()


@pytest.fixture
def store(config):
    return RegistryStore.from_config(config)


@pytest.fixture
def resolver(remote):
    return ManifestResolver(remote, {"weather": WEATHER})


@pytest.fixture
def installer(config, remote, dependencies):
    return IsolatedInstaller.from_config(config, remote, dependencies)


@pytest.fixture
def binder():
    return CommandBinder()


@pytest.fixture
def manager(store, resolver, installer, binder, config):
    return ComponentManager(store, resolver, installer, binder, config)
