"""Tests for the plugin loader."""

import json
import sys
from pathlib import Path
from unittest.mock import Mock
import pytest

from liveplug.errors import NotInstalledError, PluginLoadError
from liveplug.loader import MODULE_PREFIX, PluginLoader, module_name_for
from liveplug.registry import PluginInfo

from tests.fakes import write_plugin


def installed(location: Path, name: str, files: dict, main: str = "index.py") -> PluginInfo:
    write_plugin(location, name, "1.0.0", files=files)
    return PluginInfo(
        name=name,
        version="1.0.0",
        location=location,
        main_file=location / main,
    )


@pytest.fixture
def loader():
    loader = PluginLoader()
    yield loader
    loader.unload_all()


class TestModuleNames:
    """Tests for module naming."""

    def test_module_name_for(self):
        assert module_name_for("greeter", Path("index.py")) == f"{MODULE_PREFIX}.greeter.index"
        assert module_name_for("@acme/tools", Path("lib/util.py")) == f"{MODULE_PREFIX}._acme_tools.lib_util"


class TestSplitRequire:
    """Tests for require specifier parsing."""

    def test_plain_name(self, loader):
        assert loader.split_require("greeter") == ("greeter", None)

    def test_sub_path(self, loader):
        assert loader.split_require("greeter/lib/util") == ("greeter", "lib/util")

    def test_scoped_name(self, loader):
        assert loader.split_require("@acme/tools") == ("@acme/tools", None)
        assert loader.split_require("@acme/tools/lib") == ("@acme/tools", "lib")


class TestResolve:
    """Tests for path resolution inside a plugin."""

    def test_resolve_variants(self, loader, temp_dir):
        plugin = installed(
            temp_dir / "greeter",
            "greeter",
            {"index.py": "", "lib/util.py": "", "pkg/__init__.py": "", "data.txt": ""},
        )

        assert loader.resolve(plugin, "lib/util.py") == (temp_dir / "greeter" / "lib" / "util.py").resolve()
        assert loader.resolve(plugin, "lib/util") == (temp_dir / "greeter" / "lib" / "util.py").resolve()
        assert loader.resolve(plugin, "pkg") == (temp_dir / "greeter" / "pkg" / "__init__.py").resolve()
        assert loader.resolve(plugin, "./data.txt") == (temp_dir / "greeter" / "data.txt").resolve()

    def test_resolve_missing(self, loader, temp_dir):
        plugin = installed(temp_dir / "greeter", "greeter", {"index.py": ""})

        with pytest.raises(FileNotFoundError):
            loader.resolve(plugin, "missing")

    def test_resolve_outside_plugin(self, loader, temp_dir):
        plugin = installed(temp_dir / "greeter", "greeter", {"index.py": ""})
        (temp_dir / "secret.py").write_text("")

        with pytest.raises(FileNotFoundError, match="outside"):
            loader.resolve(plugin, "../secret.py")


class TestLoad:
    """Tests for loading and unloading."""

    def test_load_executes_entry_file(self, loader, temp_dir):
        plugin = installed(temp_dir / "greeter", "greeter", {"index.py": "GREETING = 'hello'\n"})

        module = loader.load(plugin)

        assert module.GREETING == "hello"
        assert module.__plugin__ is plugin
        assert callable(module.require)
        assert loader.is_loaded("greeter")

    def test_load_is_cached(self, loader, temp_dir):
        plugin = installed(
            temp_dir / "counter",
            "counter",
            {"index.py": "import itertools\nTOKEN = object()\n"},
        )

        assert loader.load(plugin) is loader.load(plugin)

    def test_relative_require(self, loader, temp_dir):
        plugin = installed(
            temp_dir / "greeter",
            "greeter",
            {
                "index.py": "helpers = require('./helpers')\nVALUE = helpers.salute('ada')\n",
                "helpers.py": "def salute(name):\n    return 'hi ' + name\n",
            },
        )

        assert loader.load(plugin).VALUE == "hi ada"

    def test_unload_evicts_modules(self, loader, temp_dir):
        plugin = installed(temp_dir / "greeter", "greeter", {"index.py": "TOKEN = object()\n"})

        first = loader.load(plugin)
        assert first.__name__ in sys.modules

        loader.unload(plugin)

        assert not loader.is_loaded("greeter")
        assert first.__name__ not in sys.modules
        assert loader.load(plugin) is not first

    def test_load_failure(self, loader, temp_dir):
        plugin = installed(temp_dir / "broken", "broken", {"index.py": "raise ValueError('nope')\n"})

        with pytest.raises(PluginLoadError, match="nope"):
            loader.load(plugin)

        assert not loader.is_loaded("broken")

    def test_missing_entry_file(self, loader, temp_dir):
        plugin = installed(temp_dir / "empty", "empty", {"other.py": ""})

        with pytest.raises(PluginLoadError, match="Entry point not found"):
            loader.load(plugin)


class TestRequire:
    """Tests for dependency lookup from plugin code."""

    def test_static_dependency(self, temp_dir):
        api = object()
        loader = PluginLoader(static_dependencies={"host-api": api})
        plugin = installed(temp_dir / "greeter", "greeter", {"index.py": "API = require('host-api')\n"})

        assert loader.load(plugin).API is api
        loader.unload_all()

    def test_host_module(self, loader):
        assert loader.require("json") is json

    def test_installed_plugin_through_manager(self, temp_dir):
        base = PluginInfo(
            name="base",
            version="1.0.0",
            location=temp_dir / "base",
            main_file=temp_dir / "base" / "index.py",
        )
        manager = Mock()
        manager.get_info.return_value = base
        manager.require.return_value = "base-module"

        loader = PluginLoader(manager=manager)

        assert loader.require("base/lib") == "base-module"
        manager.get_info.assert_called_once_with("base")
        manager.require.assert_called_once_with("base/lib")

    def test_missing_dependency(self, loader):
        with pytest.raises(NotInstalledError, match="not installed"):
            loader.require("definitely-not-a-module-xyz")

    def test_run_script(self, loader):
        namespace = loader.run_script("dumps = require('json').dumps\nresult = dumps([1])\n")
        assert namespace["result"] == "[1]"
