"""Tests for the liveplug CLI."""

import json
import logging
from click.testing import CliRunner
import pytest
import structlog

from liveplug.cli import cli
from liveplug.sources import NpmRegistrySource

from tests.fakes import REGISTRY_URL, write_plugin


@pytest.fixture
def runner(mocker):
    # Keep structured logs out of command output
    mocker.patch("liveplug.cli.setup_logging")
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(logging.CRITICAL))
    yield CliRunner()
    structlog.reset_defaults()


@pytest.fixture
def invoke(runner, temp_dir):
    store = temp_dir / "store"

    def invoke(*args, **kwargs):
        return runner.invoke(
            cli,
            ["--plugins-path", str(store), "--config", str(temp_dir / "none.toml"), *args],
            **kwargs,
        )

    invoke.store = store
    return invoke


@pytest.fixture
def fake_registry(mocker, remote):
    """Point the registry source built by the CLI at the fake remote."""

    def build(registry_url, **kwargs):
        kwargs["transport"] = remote.transport
        return NpmRegistrySource(REGISTRY_URL, **kwargs)

    mocker.patch("liveplug.manager.NpmRegistrySource", side_effect=build)
    return remote


class TestCli:
    """Tests for CLI commands."""

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_install_path_then_list(self, invoke, temp_dir):
        src = write_plugin(temp_dir / "src", "greeter", "1.0.0")

        result = invoke("install-path", str(src))
        assert result.exit_code == 0, result.output
        assert "Installed: greeter v1.0.0" in result.output

        result = invoke("list", "--json")
        assert result.exit_code == 0, result.output
        plugins = json.loads(result.stdout)
        assert [p["name"] for p in plugins] == ["greeter"]
        assert plugins[0]["version"] == "1.0.0"

    def test_info(self, invoke, temp_dir):
        write_plugin(temp_dir / "src", "greeter", "1.0.0")
        invoke("install-path", str(temp_dir / "src"))

        result = invoke("info", "greeter")

        assert result.exit_code == 0, result.output
        assert "Plugin: greeter" in result.output
        assert "1.0.0" in result.output

    def test_info_not_installed(self, invoke):
        result = invoke("info", "missing")
        assert result.exit_code == 1
        assert "not installed" in result.output

    def test_uninstall(self, invoke, temp_dir):
        write_plugin(temp_dir / "src", "greeter", "1.0.0")
        invoke("install-path", str(temp_dir / "src"))

        result = invoke("uninstall", "greeter")

        assert result.exit_code == 0, result.output
        assert "Uninstalled: greeter" in result.output
        assert not (invoke.store / "greeter").exists()

    def test_uninstall_not_installed(self, invoke):
        result = invoke("uninstall", "missing")
        assert result.exit_code == 0
        assert "not installed" in result.output

    def test_uninstall_all(self, invoke, temp_dir):
        for name in ("a", "b"):
            write_plugin(temp_dir / name, name, "1.0.0")
            invoke("install-path", str(temp_dir / name))

        result = invoke("uninstall-all", "--yes")

        assert result.exit_code == 0, result.output
        assert "Uninstalled 2 plugin(s)" in result.output
        assert json.loads(invoke("list", "--json").stdout) == []

    def test_uninstall_all_cancelled(self, invoke, temp_dir):
        write_plugin(temp_dir / "src", "greeter", "1.0.0")
        invoke("install-path", str(temp_dir / "src"))

        result = invoke("uninstall-all", input="n\n")

        assert "Cancelled" in result.output
        assert (invoke.store / "greeter").exists()

    def test_invalid_name_fails(self, invoke):
        result = invoke("install", ".hidden")
        assert result.exit_code == 1
        assert "Invalid plugin name" in result.output

    def test_install_from_registry(self, invoke, fake_registry):
        fake_registry.publish("greeter", "1.2.0")

        result = invoke("install", "greeter", "^1.0.0")

        assert result.exit_code == 0, result.output
        assert "Installed: greeter v1.2.0" in result.output

    def test_query(self, invoke, fake_registry):
        fake_registry.publish("greeter", "1.2.0")

        result = invoke("query", "greeter")

        assert result.exit_code == 0, result.output
        assert "greeter" in result.output
        assert "1.2.0" in result.output
        assert not (invoke.store / "greeter").exists()
