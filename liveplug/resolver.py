"""Dependency resolution.

Installs the declared dependencies of a freshly materialized plugin. The
walk uses an explicit stack instead of recursion: each frame holds a plugin
and the dependencies still to visit. A plugin is registered when its frame
is popped, so dependencies always precede their dependents in the registry.
"""

import re
from enum import Enum
from typing import Awaitable, Callable, Container, Iterable, Optional, Union
import structlog

from liveplug.registry import InstalledPlugins, PluginInfo
from liveplug.results import InstallOutcome, InstallResult
from liveplug.versions import satisfies

log = structlog.get_logger()

InstallOne = Callable[[str, str], Awaitable[InstallResult]]


class DependencyDecision(str, Enum):
    """Why a dependency was skipped, or that it must be installed."""

    IGNORED = "ignored"
    STATIC = "static"
    HOST = "host"
    INSTALLED = "installed"
    CYCLE = "cycle"
    INSTALL = "install"


class DependencyResolver:
    """Decides, per dependency, whether to skip or install it.

    Args:
        registry: Installed plugins
        ignored: Names or regular expressions of dependencies never installed
        static_names: Dependencies the host supplies out of band
        host_manifest: Probe returning a host module's manifest, or None
    """

    def __init__(
        self,
        registry: InstalledPlugins,
        ignored: Optional[Iterable[Union[str, re.Pattern]]] = None,
        static_names: Optional[Iterable[str]] = None,
        host_manifest: Optional[Callable[[str], Optional[dict]]] = None,
    ):
        self.registry = registry
        self.ignored = list(ignored or [])
        self.static_names = set(static_names or [])
        self.host_manifest = host_manifest

    def should_ignore(self, name: str) -> bool:
        for pattern in self.ignored:
            if isinstance(pattern, re.Pattern):
                if pattern.search(name):
                    return True
            elif name == pattern or re.search(pattern, name):
                return True
        return False

    def available_from_host(self, name: str, version: str) -> bool:
        """Check if the host environment already provides a compatible module."""
        if self.host_manifest is None:
            return False

        try:
            manifest = self.host_manifest(name)
        except Exception as e:
            log.debug("host_probe_failed", name=name, error=str(e))
            return False

        if not manifest or not manifest.get("version"):
            return False

        return satisfies(manifest["version"], version)

    def decide(self, name: str, version: str, in_progress: Container[str]) -> DependencyDecision:
        if self.should_ignore(name):
            return DependencyDecision.IGNORED
        if name in self.static_names:
            return DependencyDecision.STATIC
        if self.available_from_host(name, version):
            return DependencyDecision.HOST
        if self.registry.satisfying(name, version) is not None:
            return DependencyDecision.INSTALLED
        if name in in_progress:
            return DependencyDecision.CYCLE
        return DependencyDecision.INSTALL

    async def install_with_dependencies(self, root: PluginInfo, install_one: InstallOne) -> PluginInfo:
        """Install the dependency tree of ``root`` and register everything.

        Args:
            root: Materialized plugin, not yet registered
            install_one: Runs the install decision tree for one dependency
                without resolving its dependencies or registering it

        Returns:
            The registered root plugin
        """
        stack = [(root, iter(list(root.dependencies.items())))]
        in_progress = {root.name: root}

        while stack:
            plugin, pending = stack[-1]
            step = next(pending, None)

            if step is None:
                stack.pop()
                in_progress.pop(plugin.name, None)
                self.registry.add(plugin)
                log.info("plugin_registered", name=plugin.name, version=plugin.version)
                continue

            name, version = step
            decision = self.decide(name, version, in_progress)

            if decision is DependencyDecision.CYCLE:
                if satisfies(in_progress[name].version, version):
                    log.debug("dependency_cycle_satisfied", plugin=plugin.name, dependency=name)
                    continue

                # Incompatible circular ranges cannot be satisfied; keep going
                log.warning(
                    "dependency_cycle_conflict",
                    plugin=plugin.name,
                    dependency=name,
                    version=version,
                )
                continue

            if decision is not DependencyDecision.INSTALL:
                log.debug(
                    "dependency_skipped",
                    plugin=plugin.name,
                    dependency=name,
                    reason=decision.value,
                )
                continue

            log.debug("dependency_installing", plugin=plugin.name, dependency=name, version=version)
            result = await install_one(name, version)

            if result.outcome is InstallOutcome.REUSED:
                continue

            in_progress[result.plugin.name] = result.plugin
            stack.append((result.plugin, iter(list(result.plugin.dependencies.items()))))

        return root
