"""
Centralized configuration for compman.

Configuration sources (priority order):
1. Environment variables (COMPMAN_*)
2. Default values

Environment variables:
- COMPMAN_RUNTIME_DIR: Runtime directory (default: ~/.local/share/compman)
- COMPMAN_LOG_LEVEL: Log level (default: INFO)
- COMPMAN_FETCH_TIMEOUT: Fetch + dependency install timeout in seconds (default: 300)
- COMPMAN_CHECK_TIMEOUT: Remote version lookup timeout in seconds (default: 2)
- COMPMAN_KEEP_VERSIONS: Superseded versions kept on disk for rollback (default: 1)
- COMPMAN_UPDATE_CHECK: Enable background update checks (default: true)
- COMPMAN_UPDATE_INTERVAL: Update check cache interval, e.g. 6h or 1d (default: 6h)
- COMPMAN_GITHUB_API: GitHub API base URL (default: https://api.github.com)
- COMPMAN_GITHUB_TOKEN: Optional token for authenticated API requests
"""

import os
from dataclasses import dataclass
from pathlib import Path

__all__ = ["CompmanConfig", "config", "DEFAULT_RUNTIME_DIR"]

DEFAULT_RUNTIME_DIR = Path.home() / ".local/share/compman"


def _get_env(key: str, default: str) -> str:
    """Get environment variable with COMPMAN_ prefix."""
    return os.environ.get(f"COMPMAN_{key}", default)


def _get_env_int(key: str, default: int) -> int:
    """Get integer environment variable."""
    return int(_get_env(key, str(default)))


def _get_env_float(key: str, default: float) -> float:
    """Get float environment variable."""
    return float(_get_env(key, str(default)))


def _get_env_bool(key: str, default: bool) -> bool:
    """Get boolean environment variable."""
    val = os.environ.get(f"COMPMAN_{key}")
    if val is None:
        return default
    return val.lower() in ("true", "1", "yes", "on")


def _get_env_path(key: str, default: Path) -> Path:
    """Get path environment variable."""
    val = os.environ.get(f"COMPMAN_{key}")
    return Path(val) if val else default


@dataclass(frozen=True)
class CompmanConfig:
    """Immutable component manager configuration.

    Passed explicitly to every collaborator; nothing reads a global.
    """

    runtime_dir: Path = _get_env_path("RUNTIME_DIR", DEFAULT_RUNTIME_DIR)
    log_level: str = _get_env("LOG_LEVEL", "INFO")

    fetch_timeout: float = _get_env_float("FETCH_TIMEOUT", 300.0)
    check_timeout: float = _get_env_float("CHECK_TIMEOUT", 2.0)

    # Rollback retention
    keep_versions: int = _get_env_int("KEEP_VERSIONS", 1)

    # Update checks
    update_check_enabled: bool = _get_env_bool("UPDATE_CHECK", True)
    update_interval: str = _get_env("UPDATE_INTERVAL", "6h")

    github_api: str = _get_env("GITHUB_API", "https://api.github.com")
    github_token: str | None = os.environ.get("COMPMAN_GITHUB_TOKEN") or None

    # Log rotation
    log_max_bytes: int = 5 * 1024 * 1024  # 5MB
    log_backup_count: int = 3

    @property
    def components_dir(self) -> Path:
        """Root of all isolated component installs."""
        return self.runtime_dir / "components"

    @property
    def state_dir(self) -> Path:
        """State directory for registry, lock and caches."""
        return self.runtime_dir / "state"

    @property
    def registry_file(self) -> Path:
        return self.state_dir / "registry.json"

    @property
    def lock_file(self) -> Path:
        return self.state_dir / "registry.lock"

    @property
    def catalog_file(self) -> Path:
        """User catalog of short names -> source coordinates."""
        return self.runtime_dir / "catalog.json"

    @property
    def update_cache_file(self) -> Path:
        return self.state_dir / "update-cache.json"

    @property
    def log_dir(self) -> Path:
        """Log directory."""
        return self.runtime_dir / "logs"

    @property
    def log_file(self) -> Path:
        """Log file path."""
        return self.log_dir / "compman.log"

    def ensure_dirs(self) -> None:
        """Create runtime directories if they don't exist."""
        self.runtime_dir.mkdir(parents=True, exist_ok=True)
        self.components_dir.mkdir(exist_ok=True)
        self.state_dir.mkdir(exist_ok=True)
        self.log_dir.mkdir(exist_ok=True)


# Default instance for the process entry point
config = CompmanConfig()
