"""Exceptions raised by liveplug.

Every error derives from LivePlugError so callers can catch the whole
family at once.
"""


class LivePlugError(Exception):
    """Base exception for plugin store errors."""

    pass


class InvalidNameError(LivePlugError):
    """Raised when a plugin name is rejected before any I/O."""

    def __init__(self, name):
        self.name = name
        super().__init__(f"Invalid plugin name '{name}'")


class InvalidVersionError(LivePlugError):
    """Raised when a version string is not a valid semantic version."""

    def __init__(self, version):
        self.version = version
        super().__init__(f"Invalid plugin version '{version}'")


class NotInstalledError(LivePlugError):
    """Raised when a plugin is required but not installed."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"{name} not installed")


class InvalidPackageError(LivePlugError):
    """Raised when a manifest is missing or lacks name/version."""

    pass


class LockAcquireError(LivePlugError):
    """Raised when the store lock cannot be acquired in time."""

    pass


class LockReleaseError(LivePlugError):
    """Raised when the store lock file cannot be removed."""

    pass


class SourceResolutionError(LivePlugError):
    """Raised when a package source cannot resolve a package."""

    pass


class SourceMaterializeError(LivePlugError):
    """Raised when a package source cannot write a package to the store."""

    pass


class PluginLoadError(LivePlugError):
    """Raised when an installed plugin fails to execute."""

    pass
