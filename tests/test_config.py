"""Tests for manager configuration."""

import re
import pytest
import toml
from pydantic import ValidationError

from liveplug.config import BASE_NPM_URL, ManagerConfig, host_distribution_manifest


class TestManagerConfig:
    """Tests for ManagerConfig defaults and validation."""

    def test_defaults(self, temp_dir):
        config = ManagerConfig(cwd=temp_dir)

        assert config.plugins_path == temp_dir / "plugin_packages"
        assert config.lock_path == temp_dir / "plugin_packages" / "install.lock"
        assert config.npm_registry_url == BASE_NPM_URL
        assert config.lock_wait == 120000
        assert config.lock_stale == 180000
        assert config.default_main_file == "index.py"
        assert config.default_main_extension == ".py"
        assert config.ignored_dependencies[0].search("types-requests")

    def test_explicit_plugins_path(self, temp_dir):
        config = ManagerConfig(cwd=temp_dir, plugins_path=temp_dir / "store")
        assert config.plugins_path == temp_dir / "store"

    def test_url_trailing_slash_stripped(self):
        config = ManagerConfig(npm_registry_url="https://npm.example.com/")
        assert config.npm_registry_url == "https://npm.example.com"

    def test_empty_url_rejected(self):
        with pytest.raises(ValidationError):
            ManagerConfig(npm_registry_url="  ")

    def test_extension_gets_dot(self):
        config = ManagerConfig(default_main_extension="py")
        assert config.default_main_extension == ".py"

    def test_invalid_ignore_pattern(self):
        with pytest.raises(ValidationError):
            ManagerConfig(ignored_dependencies=["("])

    def test_lock_times_must_be_positive(self):
        with pytest.raises(ValidationError):
            ManagerConfig(lock_wait=0)

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            ManagerConfig(log_level="LOUD")


class TestConfigFiles:
    """Tests for loading and saving TOML configuration."""

    def test_load_from_file(self, temp_dir):
        path = temp_dir / "liveplug.toml"
        path.write_text(
            toml.dumps(
                {
                    "plugins_path": str(temp_dir / "store"),
                    "npm_registry_url": "https://npm.example.com",
                    "lock_wait": 5000,
                    "ignored_dependencies": ["^dev-"],
                }
            )
        )

        config = ManagerConfig.load(str(path))

        assert config.plugins_path == temp_dir / "store"
        assert config.npm_registry_url == "https://npm.example.com"
        assert config.lock_wait == 5000
        assert config.ignored_dependencies == ["^dev-"]

    def test_overrides_take_precedence(self, temp_dir):
        path = temp_dir / "liveplug.toml"
        path.write_text(toml.dumps({"lock_wait": 5000}))

        config = ManagerConfig.load(str(path), lock_wait=100, plugins_path=None)
        assert config.lock_wait == 100

    def test_missing_file_uses_defaults(self, temp_dir):
        config = ManagerConfig.load(str(temp_dir / "missing.toml"), cwd=temp_dir)
        assert config.plugins_path == temp_dir / "plugin_packages"

    def test_malformed_file_uses_defaults(self, temp_dir):
        path = temp_dir / "liveplug.toml"
        path.write_text("lock_wait = = 1")

        config = ManagerConfig.load(str(path))
        assert config.lock_wait == 120000

    def test_save_and_load(self, temp_dir):
        config = ManagerConfig(
            cwd=temp_dir,
            lock_stale=9000,
            ignored_dependencies=[re.compile(r"^types-"), "^dev-"],
        )
        path = temp_dir / "out" / "config.toml"

        config.save(str(path))
        loaded = ManagerConfig.load(str(path))

        assert loaded.lock_stale == 9000
        assert loaded.plugins_path == config.plugins_path
        assert loaded.ignored_dependencies == ["^types-", "^dev-"]


class TestHostManifest:
    """Tests for the host environment probe."""

    def test_installed_distribution(self):
        manifest = host_distribution_manifest("pydantic")
        assert manifest["version"]

    def test_missing_distribution(self):
        assert host_distribution_manifest("definitely-not-installed-xyz") is None
