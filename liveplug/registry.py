"""In-memory registry of installed plugins.

The registry is the authoritative list of installed plugins for one
PluginManager. Insertion order is install order. The store directory is its
durable projection and is reconciled only at install/uninstall time.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import structlog

from liveplug.versions import satisfies

log = structlog.get_logger()


@dataclass(frozen=True)
class PluginInfo:
    """An installed plugin.

    Attributes:
        name: Plugin name (unique in a registry)
        version: Installed version
        location: Plugin directory inside the store
        main_file: Absolute path of the entry file
        dependencies: Dict of dependency name -> version range
    """

    name: str
    version: str
    location: Path
    main_file: Path
    dependencies: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "version": self.version,
            "location": str(self.location),
            "main_file": str(self.main_file),
            "dependencies": dict(self.dependencies),
        }

    def depends_on(self, name: str) -> bool:
        return name in self.dependencies


class InstalledPlugins:
    """Ordered collection of installed plugins, unique by name.

    Example:
        registry = InstalledPlugins()
        registry.add(info)

        registry.get("my-plugin")
        registry.satisfying("my-plugin", "^1.0.0")
        registry.dependents_of("my-plugin")

        registry.remove("my-plugin")
    """

    def __init__(self):
        self._plugins: dict[str, PluginInfo] = {}

    def add(self, plugin: PluginInfo) -> PluginInfo:
        """Append a plugin.

        Raises:
            ValueError: If a plugin with the same name is already registered
        """
        if plugin.name in self._plugins:
            raise ValueError(f"Plugin '{plugin.name}' is already registered")

        self._plugins[plugin.name] = plugin
        log.debug("registry_plugin_added", name=plugin.name, version=plugin.version)
        return plugin

    def remove(self, name: str) -> Optional[PluginInfo]:
        """Remove a plugin.

        Returns:
            Removed plugin or None if not found
        """
        plugin = self._plugins.pop(name, None)
        if plugin:
            log.debug("registry_plugin_removed", name=name)
        return plugin

    def get(self, name: str) -> Optional[PluginInfo]:
        return self._plugins.get(name)

    def get_all(self) -> list[PluginInfo]:
        """Get all plugins in install order."""
        return list(self._plugins.values())

    def exists(self, name: str) -> bool:
        return name in self._plugins

    def satisfying(self, name: str, version: Optional[str] = None) -> Optional[PluginInfo]:
        """Get the installed plugin if it satisfies a version range.

        Args:
            name: Plugin name
            version: Version range; None accepts any installed version

        Returns:
            PluginInfo or None if missing or incompatible
        """
        plugin = self._plugins.get(name)
        if plugin is None:
            return None

        if not version or satisfies(plugin.version, version):
            return plugin

        return None

    def dependents_of(self, name: str) -> list[PluginInfo]:
        """Get plugins whose dependency map names ``name``."""
        return [p for p in self._plugins.values() if p.depends_on(name)]
