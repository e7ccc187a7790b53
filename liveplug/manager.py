"""Plugin manager.

Installs, tracks and removes plugins in a shared store directory. Every
operation that mutates the store runs under the store's cross-process lock,
so several processes (or several managers) pointed at the same directory
never observe a partially installed plugin.

Example:
    manager = PluginManager(plugins_path=Path("plugin_packages"))

    # From the registry, a GitHub repository, a directory or source text
    await manager.install("text-formatter", "^1.2.0")
    await manager.install("greeter", "acme/greeter#v2.0.0")
    await manager.install_from_path(Path("/path/to/my-plugin"))
    await manager.install_from_code("answer", "value = 42", "1.0.0")

    manager.require("answer").value  # 42

    await manager.uninstall("greeter")
"""

import os
import shutil
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional
import httpx
import structlog

from liveplug.cascade import UninstallCascade
from liveplug.config import ManagerConfig
from liveplug.errors import (
    InvalidNameError,
    InvalidPackageError,
    InvalidVersionError,
    NotInstalledError,
)
from liveplug.loader import PluginLoader
from liveplug.lock import StoreLock
from liveplug.manifest import PackageInfo, read_manifest
from liveplug.registry import InstalledPlugins, PluginInfo
from liveplug.resolver import DependencyResolver
from liveplug.results import InstallOutcome, InstallResult
from liveplug.sources import (
    LATEST_TAG,
    NO_VERSION,
    CodeSource,
    GithubSource,
    LocalPathSource,
    NpmRegistrySource,
    PackageSource,
    is_github_repo,
)
from liveplug.versions import is_valid_range, is_valid_version

log = structlog.get_logger()


@dataclass
class InstallOptions:
    """Options for installing from a local directory.

    Attributes:
        force: Always reinstall, skipping the version checks
    """

    force: bool = False


def is_valid_plugin_name(name: Any) -> bool:
    """Check a plugin name.

    ``/`` is permitted to support scoped names (``@scope/name``); leading
    dots, backslashes and relative path segments are not.
    """
    if not isinstance(name, str) or len(name) == 0:
        return False

    if name.startswith(".") or "\\" in name:
        return False

    return all(segment not in ("", ".", "..") for segment in name.split("/"))


def validate_plugin_name(name: Any) -> None:
    """Raise InvalidNameError for an invalid plugin name."""
    if not is_valid_plugin_name(name):
        raise InvalidNameError(name)


class PluginManager:
    """Installs plugins into a store and loads them on demand.

    One manager owns one registry of installed plugins; managers over
    different stores are fully independent.

    Args:
        config: Manager configuration (built from ``options`` if omitted)
        loader: Loader used by ``require`` and uninstall
        transport: Optional httpx transport used by the network sources
        **options: ManagerConfig fields, when no config is given
    """

    def __init__(
        self,
        config: Optional[ManagerConfig] = None,
        loader: Optional[PluginLoader] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **options,
    ):
        self.config = config or ManagerConfig(**options)
        self.registry = InstalledPlugins()

        self.loader = loader or PluginLoader(
            static_dependencies=self.config.static_dependencies,
            default_main_file=self.config.default_main_file,
            default_main_extension=self.config.default_main_extension,
        )
        if self.loader.manager is None:
            self.loader.manager = self

        self.npm_registry = NpmRegistrySource(
            self.config.npm_registry_url,
            token=self.config.npm_registry_token,
            username=self.config.npm_registry_username,
            password=self.config.npm_registry_password,
            timeout=self.config.http_timeout,
            transport=transport,
        )
        self.github_registry = GithubSource(
            token=self.config.github_token,
            api_url=self.config.github_api_url,
            timeout=self.config.http_timeout,
            transport=transport,
        )
        self.local_source = LocalPathSource()

        self.lock = StoreLock(
            self.config.lock_path,
            wait_ms=self.config.lock_wait,
            stale_ms=self.config.lock_stale,
        )
        self.resolver = DependencyResolver(
            self.registry,
            ignored=self.config.ignored_dependencies,
            static_names=self.config.static_dependencies.keys(),
            host_manifest=self.config.host_manifest,
        )
        self.cascade = UninstallCascade(self.registry, self.loader)

    @property
    def plugins_path(self) -> Path:
        return self.config.plugins_path

    @asynccontextmanager
    async def locked(self):
        """Hold the store lock, creating the store if needed.

        A failure to release the lock is logged and never replaces the
        result or the error of the guarded block.
        """
        self.plugins_path.mkdir(parents=True, exist_ok=True)
        async with self.lock:
            yield

    # ============================================
    # Public API
    # ============================================

    async def install(self, name: str, version: Optional[str] = None) -> PluginInfo:
        """Install a plugin from the registry or from GitHub.

        Args:
            name: Plugin name
            version: Version, range or dist-tag (default "latest"), or a
                GitHub reference such as ``owner/repo#ref``

        Returns:
            The installed plugin
        """
        validate_plugin_name(name)

        async with self.locked():
            result = await self._install_lock_free(name, version)
        return result.plugin

    async def install_from_npm(self, name: str, version: str = LATEST_TAG) -> PluginInfo:
        """Install a plugin from the registry.

        Args:
            name: Plugin name
            version: Version, range or dist-tag
        """
        validate_plugin_name(name)

        async with self.locked():
            result = await self._complete(await self._prepare_from_npm(name, version))
        return result.plugin

    async def install_from_path(
        self,
        location: Path,
        options: Optional[InstallOptions] = None,
    ) -> PluginInfo:
        """Install a plugin from a local directory.

        Args:
            location: Plugin directory containing a manifest
            options: With ``force`` the plugin is always reinstalled
        """
        options = options or InstallOptions()

        async with self.locked():
            result = await self._complete(await self._prepare_from_path(Path(location), options.force))
        return result.plugin

    async def install_from_github(self, repository: str) -> PluginInfo:
        """Install a plugin from a GitHub repository (``owner/repo[#ref]``)."""
        async with self.locked():
            result = await self._complete(await self._prepare_from_github(repository))
        return result.plugin

    async def install_from_code(self, name: str, code: str, version: Optional[str] = None) -> PluginInfo:
        """Install a plugin from source text.

        Without a version the plugin is always reinstalled.

        Args:
            name: Plugin name
            code: Source of the entry file
            version: Optional semantic version
        """
        validate_plugin_name(name)
        version = version or NO_VERSION
        if not is_valid_version(version):
            raise InvalidVersionError(version)

        async with self.locked():
            result = await self._complete(await self._prepare_from_code(name, code, version))
        return result.plugin

    async def uninstall(self, name: str) -> bool:
        """Uninstall a plugin.

        Returns:
            True if the plugin was installed
        """
        validate_plugin_name(name)

        async with self.locked():
            return await self._uninstall_lock_free(name)

    async def uninstall_all(self) -> None:
        """Uninstall every plugin, most recently installed first."""
        async with self.locked():
            for plugin in reversed(self.registry.get_all()):
                await self._uninstall_lock_free(plugin.name)

    def list(self) -> list[PluginInfo]:
        return self.registry.get_all()

    def get_info(self, name: str) -> Optional[PluginInfo]:
        return self.registry.get(name)

    def already_installed(self, name: str, version: Optional[str] = None) -> Optional[PluginInfo]:
        """Get the installed plugin if it satisfies ``version``."""
        return self.registry.satisfying(name, version)

    async def query_package(self, name: str, version: Optional[str] = None) -> PackageInfo:
        """Resolve a package without installing it."""
        validate_plugin_name(name)

        if version and is_github_repo(version):
            return await self.query_package_from_github(version)

        return await self.query_package_from_npm(name, version or LATEST_TAG)

    async def query_package_from_npm(self, name: str, version: str = LATEST_TAG) -> PackageInfo:
        validate_plugin_name(name)
        return await self.npm_registry.resolve(name, version)

    async def query_package_from_github(self, repository: str) -> PackageInfo:
        return await self.github_registry.resolve(repository)

    def require(self, specifier: str) -> Any:
        """Load an installed plugin, or a file inside it.

        Args:
            specifier: ``name`` or ``name/sub/path``

        Raises:
            NotInstalledError: If the plugin is not installed
        """
        plugin_name, sub_path = self.loader.split_require(specifier)

        plugin = self.get_info(plugin_name)
        if plugin is None:
            raise NotInstalledError(plugin_name)

        file_path = None
        if sub_path:
            file_path = self.loader.resolve(plugin, sub_path)

        log.debug("plugin_requiring", name=plugin.name, path=str(file_path or plugin.main_file))
        return self.loader.load(plugin, file_path)

    def run_script(self, code: str) -> dict[str, Any]:
        """Run a code snippet that can ``require`` installed plugins."""
        return self.loader.run_script(code)

    def read_plugin_info(self, name: str) -> PluginInfo:
        """Build a PluginInfo from the manifest in the store.

        The entry file is the manifest's ``main`` or the default entry file;
        the default extension is appended when it has none.

        Raises:
            InvalidPackageError: If the manifest is missing or malformed
        """
        location = self._plugin_location(name)
        package = read_manifest(location)

        main_file = Path(os.path.normpath(location / (package.main or self.config.default_main_file)))
        if not main_file.suffix:
            main_file = main_file.with_name(main_file.name + self.config.default_main_extension)

        return PluginInfo(
            name=package.name,
            version=package.version,
            location=location,
            main_file=main_file,
            dependencies=dict(package.dependencies),
        )

    # ============================================
    # Lock-free internals (callers hold the lock)
    # ============================================

    async def _install_lock_free(self, name: str, version: Optional[str] = None) -> InstallResult:
        return await self._complete(await self._prepare(name, version))

    async def _prepare(self, name: str, version: Optional[str] = None) -> InstallResult:
        validate_plugin_name(name)

        if version and is_github_repo(version):
            return await self._prepare_from_github(version)

        return await self._prepare_from_npm(name, version)

    async def _prepare_from_npm(self, name: str, version: Optional[str] = None) -> InstallResult:
        version = version or LATEST_TAG
        package = await self.npm_registry.resolve(name, version)
        validate_plugin_name(package.name)

        # Dist-tags pin to the version they currently point at
        requirement = version if is_valid_range(version) else package.version
        return await self._install_package(self.npm_registry, package, requirement)

    async def _prepare_from_github(self, repository: str) -> InstallResult:
        package = await self.github_registry.resolve(repository)
        validate_plugin_name(package.name)

        return await self._install_package(self.github_registry, package, package.version)

    async def _prepare_from_path(self, location: Path, force: bool) -> InstallResult:
        package = await self.local_source.resolve(str(location))
        validate_plugin_name(package.name)

        requirement = None if force else package.version
        return await self._install_package(self.local_source, package, requirement, force=force)

    async def _prepare_from_code(self, name: str, code: str, version: str) -> InstallResult:
        source = CodeSource(code, self.config.default_main_file)
        package = await source.resolve(name, version)

        if version == NO_VERSION:
            return await self._install_package(source, package, None, force=True)
        return await self._install_package(source, package, version)

    async def _install_package(
        self,
        source: PackageSource,
        package: PackageInfo,
        requirement: Optional[str],
        force: bool = False,
    ) -> InstallResult:
        """Run the install decision tree up to (not including) dependencies.

        Args:
            source: Source that resolved ``package``
            package: Resolved package
            requirement: Range an installed version must satisfy to be
                reused; None always reinstalls
            force: Rewrite the files even if the store already has them
        """
        if requirement is not None:
            installed = self.registry.satisfying(package.name, requirement)
            if installed is not None:
                log.debug(
                    "plugin_already_installed",
                    name=installed.name,
                    version=installed.version,
                    requested=requirement,
                )
                return InstallResult(plugin=installed, outcome=InstallOutcome.REUSED)

        outcome = InstallOutcome.INSTALLED
        if self.registry.exists(package.name):
            log.info("plugin_replacing", name=package.name, version=package.version)
            await self._uninstall_lock_free(package.name)
            outcome = InstallOutcome.REPLACED

        materialized = False
        if force or not self._is_already_downloaded(package.name, package.version):
            self._remove_downloaded(package.name)
            await self._materialize(source, package)
            materialized = True

        plugin = self.read_plugin_info(package.name)
        if plugin.name != package.name or plugin.version != package.version:
            self._remove_downloaded(package.name)
            raise InvalidPackageError(
                f"Invalid plugin {plugin.location}, manifest declares "
                f"{plugin.name}@{plugin.version} but {package.name}@{package.version} was resolved"
            )

        log.info(
            "plugin_installed",
            name=plugin.name,
            version=plugin.version,
            outcome=outcome.value,
            source=source.type.value,
            materialized=materialized,
        )
        return InstallResult(plugin=plugin, outcome=outcome, materialized=materialized)

    async def _complete(self, result: InstallResult) -> InstallResult:
        """Install dependencies of a prepared plugin and register it."""
        if result.outcome is InstallOutcome.REUSED:
            return result

        await self.resolver.install_with_dependencies(result.plugin, self._prepare)
        return result

    async def _materialize(self, source: PackageSource, package: PackageInfo) -> None:
        location = self._plugin_location(package.name)
        location.parent.mkdir(parents=True, exist_ok=True)

        try:
            await source.materialize(package, location)
        except BaseException:
            # Never leave a partial package behind
            self._remove_downloaded(package.name)
            raise

    async def _uninstall_lock_free(self, name: str) -> bool:
        validate_plugin_name(name)

        plugin = self.registry.get(name)
        if plugin is None:
            log.debug("plugin_not_installed", name=name)
            return False

        self.cascade.unload_with_dependents(plugin)
        self.registry.remove(name)
        self._remove_downloaded(name)

        log.info("plugin_uninstalled", name=name, version=plugin.version)
        return True

    # ============================================
    # Store helpers
    # ============================================

    def _plugin_location(self, name: str) -> Path:
        root = self.plugins_path.resolve()
        location = (root / name).resolve()
        if root not in location.parents:
            raise InvalidNameError(name)
        return self.plugins_path / name

    def _is_already_downloaded(self, name: str, version: str) -> bool:
        location = self._plugin_location(name)
        if not location.is_dir():
            return False

        try:
            package = read_manifest(location)
        except InvalidPackageError:
            return False

        return package.name == name and package.version == version

    def _remove_downloaded(self, name: str) -> None:
        location = self._plugin_location(name)
        if location.is_dir() and not location.is_symlink():
            shutil.rmtree(location)
        elif location.exists() or location.is_symlink():
            location.unlink()

        # Drop emptied scope directories, never the store itself
        parent = location.parent
        while parent != self.plugins_path and parent.is_dir() and not any(parent.iterdir()):
            parent.rmdir()
            parent = parent.parent
