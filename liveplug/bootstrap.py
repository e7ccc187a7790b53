"""Rebuild a manager's registry from the contents of its store.

A fresh PluginManager starts with an empty registry even when the store
already holds plugins installed by an earlier process. ``discover_installed``
registers every valid plugin directory it finds, dependencies first, without
installing or downloading anything.
"""

from pathlib import Path
import structlog

from liveplug.errors import InvalidNameError, InvalidPackageError
from liveplug.manifest import MANIFEST_FILE
from liveplug.registry import PluginInfo

log = structlog.get_logger()


def _candidate_names(store: Path) -> list[str]:
    names = []
    for entry in sorted(store.iterdir()):
        if not entry.is_dir():
            continue
        if entry.name.startswith("@"):
            # Scoped plugins live one level deeper
            names.extend(
                f"{entry.name}/{child.name}"
                for child in sorted(entry.iterdir())
                if (child / MANIFEST_FILE).is_file()
            )
        elif (entry / MANIFEST_FILE).is_file():
            names.append(entry.name)
    return names


def _dependency_order(plugins: dict[str, PluginInfo]) -> list[PluginInfo]:
    ordered: list[PluginInfo] = []
    visited: set[str] = set()

    def visit(plugin: PluginInfo):
        visited.add(plugin.name)
        for dependency in plugin.dependencies:
            if dependency in plugins and dependency not in visited:
                visit(plugins[dependency])
        ordered.append(plugin)

    for plugin in plugins.values():
        if plugin.name not in visited:
            visit(plugin)
    return ordered


def discover_installed(manager) -> list[PluginInfo]:
    """Register plugins found in the store of ``manager``.

    Directories whose manifest is unreadable, or whose manifest name does
    not match the directory, are skipped with a warning. Plugins already
    in the registry are left untouched.

    Args:
        manager: PluginManager whose store and registry to use

    Returns:
        The newly registered plugins, in registration order
    """
    store = manager.plugins_path
    if not store.is_dir():
        log.debug("store_missing", path=str(store))
        return []

    found: dict[str, PluginInfo] = {}
    for name in _candidate_names(store):
        try:
            plugin = manager.read_plugin_info(name)
        except (InvalidPackageError, InvalidNameError) as e:
            log.warning("store_entry_invalid", name=name, error=str(e))
            continue

        if plugin.name != name:
            log.warning("store_entry_mismatch", directory=name, manifest_name=plugin.name)
            continue

        found[name] = plugin

    registered = []
    for plugin in _dependency_order(found):
        if manager.registry.exists(plugin.name):
            continue
        manager.registry.add(plugin)
        registered.append(plugin)

    log.info("store_discovered", path=str(store), plugins=len(registered))
    return registered
