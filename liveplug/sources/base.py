"""Package source interface.

A package source turns an identifier plus an optional version into a
PackageInfo (``resolve``) and writes the package files into a store
directory (``materialize``). The set of sources is closed; see SourceType.
"""

from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Optional

from liveplug.manifest import PackageInfo


class SourceType(str, Enum):
    """Types of package sources."""

    REGISTRY = "registry"  # npm-compatible package registry
    GITHUB = "github"      # GitHub repository reference
    LOCAL = "local"        # Local directory
    CODE = "code"          # Inline source text


class PackageSource(ABC):
    """Strategy for acquiring a package."""

    type: SourceType

    @abstractmethod
    async def resolve(self, identifier: str, version: Optional[str] = None) -> PackageInfo:
        """Resolve an identifier to a concrete package.

        Raises:
            SourceResolutionError: If the package cannot be found
        """

    @abstractmethod
    async def materialize(self, info: PackageInfo, destination: Path) -> None:
        """Write the package files into ``destination``.

        Raises:
            SourceMaterializeError: If the files cannot be written
        """
