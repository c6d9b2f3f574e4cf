"""Unit tests for configuration module."""

import pytest

from compman.config import CompmanConfig, _get_env_bool, _get_env_int


class TestConfig:
    """Test configuration loading."""

    def test_derived_paths(self, temp_dir):
        """All state lives under the runtime directory."""
        config = CompmanConfig(runtime_dir=temp_dir)

        assert config.components_dir == temp_dir / "components"
        assert config.registry_file == temp_dir / "state" / "registry.json"
        assert config.lock_file == temp_dir / "state" / "registry.lock"
        assert config.update_cache_file == temp_dir / "state" / "update-cache.json"
        assert config.catalog_file == temp_dir / "catalog.json"
        assert config.log_file == temp_dir / "logs" / "compman.log"

    def test_ensure_dirs(self, temp_dir):
        """ensure_dirs creates the runtime layout."""
        config = CompmanConfig(runtime_dir=temp_dir / "runtime")

        config.ensure_dirs()

        for path in (config.components_dir, config.state_dir, config.log_dir):
            assert path.is_dir()

    def test_env_helpers(self, monkeypatch):
        """COMPMAN_ variables are read with their types."""
        monkeypatch.setenv("COMPMAN_KEEP_VERSIONS", "3")
        monkeypatch.setenv("COMPMAN_UPDATE_CHECK", "off")

        assert _get_env_int("KEEP_VERSIONS", 1) == 3
        assert _get_env_bool("UPDATE_CHECK", True) is False
        assert _get_env_bool("UNSET_FLAG", True) is True

    def test_config_is_immutable(self, config):
        """Config dataclass is frozen."""
        with pytest.raises(Exception):  # FrozenInstanceError
            config.keep_versions = 5
