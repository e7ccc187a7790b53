"""Local directory source."""

import shutil
from pathlib import Path
from typing import Optional
import structlog

from liveplug.errors import SourceMaterializeError
from liveplug.manifest import PackageInfo, read_manifest
from liveplug.sources.base import PackageSource, SourceType

log = structlog.get_logger()

# Dependency caches and build leftovers never copied into the store
EXCLUDED_DIRS = ("plugin_packages", "__pycache__", ".git")


class LocalPathSource(PackageSource):
    """Installs a plugin from a directory on disk."""

    type = SourceType.LOCAL

    def __init__(self, excluded: tuple = EXCLUDED_DIRS):
        self.excluded = excluded

    async def resolve(self, identifier: str, version: Optional[str] = None) -> PackageInfo:
        location = Path(identifier).expanduser().resolve()
        info = read_manifest(location)
        info.dist = {"path": str(location)}
        return info

    async def materialize(self, info: PackageInfo, destination: Path) -> None:
        source = info.dist.get("path")
        if not source:
            raise SourceMaterializeError(f"Package {info.name} has no local path")

        log.debug("local_copying", source=source, destination=str(destination))
        try:
            shutil.copytree(
                source,
                destination,
                ignore=shutil.ignore_patterns(*self.excluded),
            )
        except (shutil.Error, OSError) as e:
            raise SourceMaterializeError(f"Failed to copy {source} to {destination}: {e}") from e

        log.info("local_materialized", name=info.name, version=info.version, source=source)
