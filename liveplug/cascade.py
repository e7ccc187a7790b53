"""Dependent-aware unloading.

Before a plugin's files are removed, the plugin and every installed plugin
that depends on it (transitively) are unloaded so no live module keeps a
reference to code that is about to disappear. Dependents are only
unloaded; they stay registered and on disk.
"""

from typing import TYPE_CHECKING
import structlog

from liveplug.registry import InstalledPlugins, PluginInfo

if TYPE_CHECKING:
    from liveplug.loader import PluginLoader

log = structlog.get_logger()


class UninstallCascade:
    """Unloads a plugin together with its transitive dependents."""

    def __init__(self, registry: InstalledPlugins, loader: "PluginLoader"):
        self.registry = registry
        self.loader = loader

    def unload_with_dependents(self, plugin: PluginInfo) -> list[str]:
        """Unload ``plugin`` and everything depending on it.

        Returns:
            Names of the unloaded plugins, target first
        """
        unloaded: list[str] = []
        visited = {plugin.name}
        queue = [plugin]

        while queue:
            current = queue.pop(0)
            log.debug("plugin_unloading", name=current.name)
            self.loader.unload(current)
            unloaded.append(current.name)

            for dependent in self.registry.dependents_of(current.name):
                if dependent.name not in visited:
                    visited.add(dependent.name)
                    queue.append(dependent)

        if len(unloaded) > 1:
            log.info("plugin_dependents_unloaded", name=plugin.name, dependents=unloaded[1:])

        return unloaded
