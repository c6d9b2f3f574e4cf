"""
Dependency Management - UV-based private dependency installation.

Each component's requirements go into its own install directory with
`uv pip install --target <install>/deps`. The host interpreter's
environment and other components' trees are never modified.
"""

import shutil
import subprocess
import sys
from pathlib import Path

import structlog
from packaging.requirements import InvalidRequirement, Requirement

from .errors import DependencyError

__all__ = ["UvDependencyInstaller", "find_uv", "normalize_dep_name", "validate_requirements"]

logger = structlog.get_logger(__name__)


def find_uv() -> str | None:
    """Find UV executable."""
    return shutil.which("uv")


def normalize_dep_name(dep: str) -> str:
    """Extract package name from dependency spec (e.g., 'foo>=1.0' -> 'foo')."""
    return Requirement(dep).name.lower().replace("-", "_")


def validate_requirements(requirements: list[str]) -> list[str]:
    """Check every requirement parses as PEP 508.

    Returns:
        Stripped, de-duplicated requirement strings in declaration order

    Raises:
        DependencyError: On the first invalid requirement
    """
    seen: dict[str, None] = {}
    for dep in requirements:
        dep = dep.strip()
        if not dep:
            continue
        try:
            Requirement(dep)
        except InvalidRequirement as e:
            raise DependencyError(f"invalid requirement '{dep}': {e}") from e
        seen.setdefault(dep, None)
    return list(seen)


class UvDependencyInstaller:
    """Installs requirements into a target directory with uv."""

    strategy = "uv-target"

    def __init__(self, python: str | None = None) -> None:
        self.python = python or sys.executable

    def install(self, requirements: list[str], target: Path, timeout: float | None = None) -> None:
        """Install requirements into target.

        Args:
            requirements: PEP 508 requirement strings
            target: Private directory owned by one install
            timeout: Seconds before the install is abandoned

        Raises:
            DependencyError: uv missing, invalid requirement, failure or timeout
        """
        deps = validate_requirements(requirements)
        target.mkdir(parents=True, exist_ok=True)
        if not deps:
            return

        uv = find_uv()
        if not uv:
            raise DependencyError(
                "UV not found. Install with: curl -LsSf https://astral.sh/uv/install.sh | sh"
            )

        cmd = [
            uv, "pip", "install",
            "--python", self.python,
            "--target", str(target),
            *deps,
        ]

        logger.info("installing_deps", count=len(deps), target=str(target))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            raise DependencyError(f"dependency install timed out after {timeout}s") from e

        if result.returncode != 0:
            logger.error("uv_install_failed", stderr=result.stderr)
            raise DependencyError(f"dependency install failed: {result.stderr.strip()}")

        logger.info("deps_installed", count=len(deps))
