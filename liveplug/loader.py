"""Loading of installed plugins into the running interpreter.

The loader executes plugin files as modules with ``importlib``. Every
plugin module gets a ``require`` function injected before it runs, so
plugins can reach other installed plugins, static dependencies supplied by
the host, and their own files:

    # plugin_packages/greeter/index.py
    formatter = require("text-formatter")
    helpers = require("./helpers")

    def greet(name):
        return formatter.bold(helpers.salute(name))
"""

import importlib
import importlib.util
import re
import sys
from pathlib import Path
from types import ModuleType
from typing import TYPE_CHECKING, Any, Optional
import structlog

from liveplug.errors import NotInstalledError, PluginLoadError
from liveplug.registry import PluginInfo

if TYPE_CHECKING:
    from liveplug.manager import PluginManager

log = structlog.get_logger()

MODULE_PREFIX = "liveplug_plugins"


def module_name_for(plugin_name: str, relative_path: Path) -> str:
    """Build the sys.modules key of a plugin file."""
    stem = relative_path.with_suffix("").as_posix()
    safe_name = re.sub(r"[^0-9A-Za-z_]", "_", plugin_name)
    safe_stem = re.sub(r"[^0-9A-Za-z_]", "_", stem)
    return f"{MODULE_PREFIX}.{safe_name}.{safe_stem}"


class PluginLoader:
    """Loads and unloads installed plugins.

    Attributes:
        manager: Manager used to look up installed plugins for ``require``
        static_dependencies: Objects supplied by the host, keyed by name
    """

    def __init__(
        self,
        manager: Optional["PluginManager"] = None,
        static_dependencies: Optional[dict[str, Any]] = None,
        default_main_file: str = "index.py",
        default_main_extension: str = ".py",
    ):
        self.manager = manager
        self.static_dependencies = static_dependencies or {}
        self.default_main_file = default_main_file
        self.default_main_extension = default_main_extension

        # file path -> module
        self._modules: dict[Path, ModuleType] = {}
        # plugin name -> file paths loaded for it
        self._files: dict[str, set[Path]] = {}

    def split_require(self, specifier: str) -> tuple[str, Optional[str]]:
        """Split a require specifier into (plugin name, sub path).

        Scoped names keep their scope: ``@acme/tools/lib/x`` splits into
        ``("@acme/tools", "lib/x")``.
        """
        parts = specifier.split("/")
        if specifier.startswith("@") and len(parts) >= 2:
            name, rest = "/".join(parts[:2]), parts[2:]
        else:
            name, rest = parts[0], parts[1:]

        sub_path = "/".join(rest)
        return name, sub_path or None

    def resolve(self, plugin: PluginInfo, relative_path: str) -> Path:
        """Resolve a path inside a plugin to an absolute file.

        Tries the exact file, the file with the default extension, and for
        directories their ``__init__.py`` or default entry file.

        Raises:
            FileNotFoundError: If nothing matches inside the plugin
        """
        base = Path(plugin.location).resolve()
        candidate = (base / relative_path).resolve()

        if candidate != base and base not in candidate.parents:
            raise FileNotFoundError(f"'{relative_path}' is outside plugin {plugin.name}")

        if candidate.is_dir():
            for entry in ("__init__.py", self.default_main_file):
                if (candidate / entry).is_file():
                    return candidate / entry
        elif candidate.is_file():
            return candidate
        elif not candidate.suffix:
            with_extension = candidate.with_name(candidate.name + self.default_main_extension)
            if with_extension.is_file():
                return with_extension

        raise FileNotFoundError(f"Cannot find '{relative_path}' in plugin {plugin.name}")

    def is_loaded(self, name: str) -> bool:
        return bool(self._files.get(name))

    def load(self, plugin: PluginInfo, file_path: Optional[Path] = None) -> ModuleType:
        """Execute a plugin file and return its module.

        Modules are cached per file until the plugin is unloaded.

        Raises:
            PluginLoadError: If the file is missing or fails to execute
        """
        file_path = Path(file_path or plugin.main_file).resolve()

        cached = self._modules.get(file_path)
        if cached is not None:
            return cached

        if not file_path.is_file():
            raise PluginLoadError(f"Entry point not found: {file_path}")

        try:
            relative = file_path.relative_to(Path(plugin.location).resolve())
        except ValueError:
            relative = Path(file_path.name)
        module_name = module_name_for(plugin.name, relative)

        spec = importlib.util.spec_from_file_location(module_name, file_path)
        if spec is None or spec.loader is None:
            raise PluginLoadError(f"Cannot create module spec for {file_path}")

        module = importlib.util.module_from_spec(spec)
        module.require = self._make_require(plugin)
        module.__plugin__ = plugin

        # Registered before execution so circular requires see the partial module
        sys.modules[module_name] = module
        self._modules[file_path] = module
        self._files.setdefault(plugin.name, set()).add(file_path)

        log.debug("plugin_loading", name=plugin.name, path=str(file_path))
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            sys.modules.pop(module_name, None)
            self._modules.pop(file_path, None)
            self._files.get(plugin.name, set()).discard(file_path)
            raise PluginLoadError(f"Failed to load plugin {plugin.name} ({file_path}): {e}") from e

        return module

    def _evict(self, name: str) -> int:
        files = self._files.pop(name, set())
        for file_path in files:
            module = self._modules.pop(file_path, None)
            if module is not None:
                sys.modules.pop(module.__name__, None)
        return len(files)

    def unload(self, plugin: PluginInfo) -> None:
        """Evict every cached module of a plugin."""
        evicted = self._evict(plugin.name)
        if evicted:
            log.debug("plugin_unloaded", name=plugin.name, modules=evicted)

    def unload_all(self) -> None:
        for name in list(self._files):
            self._evict(name)

    def require(self, specifier: str) -> Any:
        """Resolve a dependency the way plugin code sees it.

        Order: static dependencies, installed plugins, host modules.
        """
        if specifier in self.static_dependencies:
            return self.static_dependencies[specifier]

        if self.manager is not None:
            plugin_name, _ = self.split_require(specifier)
            if self.manager.get_info(plugin_name) is not None:
                return self.manager.require(specifier)

        try:
            return importlib.import_module(specifier)
        except ImportError as e:
            raise NotInstalledError(specifier) from e

    def _make_require(self, plugin: PluginInfo):
        def require(specifier: str) -> Any:
            if specifier.startswith("."):
                return self.load(plugin, self.resolve(plugin, specifier))
            return self.require(specifier)

        return require

    def run_script(self, code: str) -> dict[str, Any]:
        """Execute a code snippet with ``require`` available.

        Returns:
            The namespace the snippet ran in
        """
        namespace: dict[str, Any] = {"__name__": f"{MODULE_PREFIX}.__script__", "require": self.require}
        exec(compile(code, "<liveplug-script>", "exec"), namespace)
        return namespace
