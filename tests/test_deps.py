"""Unit tests for private dependency installation."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from compman.deps import UvDependencyInstaller, normalize_dep_name, validate_requirements
from compman.errors import DependencyError


class TestRequirements:
    """Test requirement parsing helpers."""

    @pytest.mark.parametrize(
        "dep, expected",
        [
            ("requests", "requests"),
            ("Requests>=2.0", "requests"),
            ("typing-extensions; python_version < '3.11'", "typing_extensions"),
            ("pydantic[email]==2.5", "pydantic"),
        ],
    )
    def test_normalize_dep_name(self, dep, expected):
        """Package names are extracted and normalized."""
        assert normalize_dep_name(dep) == expected

    def test_validate_dedupes_and_strips(self):
        """Blank and duplicate entries are dropped, order kept."""
        assert validate_requirements(["b", " a ", "", "b"]) == ["b", "a"]

    def test_validate_rejects_invalid(self):
        """The first invalid requirement raises."""
        with pytest.raises(DependencyError):
            validate_requirements(["ok", "==broken"])


class TestUvDependencyInstaller:
    """Test the uv-backed installer."""

    def test_no_requirements(self, temp_dir):
        """An empty list only creates the target directory."""
        target = temp_dir / "deps"

        with patch("subprocess.run") as mock_run:
            UvDependencyInstaller().install([], target)

        assert target.is_dir()
        mock_run.assert_not_called()

    def test_uv_missing(self, temp_dir):
        """Without uv the install fails with a hint."""
        with patch("compman.deps.find_uv", return_value=None):
            with pytest.raises(DependencyError, match="UV not found"):
                UvDependencyInstaller().install(["requests"], temp_dir / "deps")

    def test_command_targets_private_dir(self, temp_dir):
        """uv is invoked with --target and the host interpreter."""
        target = temp_dir / "deps"
        completed = MagicMock(returncode=0, stderr="")

        with patch("compman.deps.find_uv", return_value="/usr/bin/uv"):
            with patch("subprocess.run", return_value=completed) as mock_run:
                UvDependencyInstaller(python="/usr/bin/python3").install(
                    ["requests>=2"], target, timeout=60
                )

        cmd = mock_run.call_args.args[0]
        assert cmd[:3] == ["/usr/bin/uv", "pip", "install"]
        assert cmd[cmd.index("--target") + 1] == str(target)
        assert cmd[cmd.index("--python") + 1] == "/usr/bin/python3"
        assert cmd[-1] == "requests>=2"
        assert mock_run.call_args.kwargs["timeout"] == 60

    def test_failure(self, temp_dir):
        """A non-zero exit raises with uv's stderr."""
        completed = MagicMock(returncode=1, stderr="No solution found")

        with patch("compman.deps.find_uv", return_value="/usr/bin/uv"):
            with patch("subprocess.run", return_value=completed):
                with pytest.raises(DependencyError, match="No solution found"):
                    UvDependencyInstaller().install(["requests"], temp_dir / "deps")

    def test_timeout(self, temp_dir):
        """A timeout surfaces as DependencyError."""
        with patch("compman.deps.find_uv", return_value="/usr/bin/uv"):
            with patch("subprocess.run", side_effect=subprocess.TimeoutExpired("uv", 5)):
                with pytest.raises(DependencyError, match="timed out"):
                    UvDependencyInstaller().install(["requests"], temp_dir / "deps", timeout=5)
