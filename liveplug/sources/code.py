"""Inline source text."""

from pathlib import Path
from typing import Optional
import structlog

from liveplug.errors import SourceMaterializeError
from liveplug.manifest import PackageInfo, write_manifest
from liveplug.sources.base import PackageSource, SourceType

log = structlog.get_logger()

NO_VERSION = "0.0.0"


class CodeSource(PackageSource):
    """Builds a plugin from source text given by the caller.

    One instance carries the text of one install call.
    """

    type = SourceType.CODE

    def __init__(self, code: str, main_file: str = "index.py"):
        self.code = code
        self.main_file = main_file

    async def resolve(self, identifier: str, version: Optional[str] = None) -> PackageInfo:
        return PackageInfo(name=identifier, version=version or NO_VERSION)

    async def materialize(self, info: PackageInfo, destination: Path) -> None:
        try:
            destination.mkdir(parents=True, exist_ok=True)
            (destination / self.main_file).write_text(self.code, encoding="utf-8")
            write_manifest(destination, {"name": info.name, "version": info.version})
        except OSError as e:
            raise SourceMaterializeError(f"Failed to write plugin {info.name}: {e}") from e

        log.info("code_materialized", name=info.name, version=info.version)
