"""liveplug - install, load and remove plugins at runtime."""

__version__ = "0.1.0"

from liveplug.bootstrap import discover_installed
from liveplug.config import ManagerConfig
from liveplug.errors import (
    InvalidNameError,
    InvalidPackageError,
    InvalidVersionError,
    LivePlugError,
    LockAcquireError,
    LockReleaseError,
    NotInstalledError,
    PluginLoadError,
    SourceMaterializeError,
    SourceResolutionError,
)
from liveplug.loader import PluginLoader
from liveplug.manager import InstallOptions, PluginManager
from liveplug.manifest import PackageInfo
from liveplug.registry import InstalledPlugins, PluginInfo
from liveplug.results import InstallOutcome, InstallResult

__all__ = [
    "__version__",
    "discover_installed",
    "ManagerConfig",
    "InvalidNameError",
    "InvalidPackageError",
    "InvalidVersionError",
    "LivePlugError",
    "LockAcquireError",
    "LockReleaseError",
    "NotInstalledError",
    "PluginLoadError",
    "SourceMaterializeError",
    "SourceResolutionError",
    "PluginLoader",
    "InstallOptions",
    "PluginManager",
    "PackageInfo",
    "InstalledPlugins",
    "PluginInfo",
    "InstallOutcome",
    "InstallResult",
]
