"""Plugin manifest handling.

Every plugin directory carries a ``plugin.json`` manifest:

    {
        "name": "my-plugin",
        "version": "1.0.0",
        "main": "my_plugin.py",
        "dependencies": {"other-plugin": "^2.0.0"}
    }

``name`` and ``version`` are required, ``main`` and ``dependencies`` are
optional.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from liveplug.errors import InvalidPackageError

MANIFEST_FILE = "plugin.json"


@dataclass
class PackageInfo:
    """Package identity reported by a package source.

    Attributes:
        name: Package name
        version: Concrete version
        main: Entry file declared by the manifest (if any)
        dependencies: Dict of dependency name -> version range
        dist: Distribution metadata (e.g. ``{"tarball": url}``)
        raw: Raw manifest data
    """

    name: str
    version: str
    main: Optional[str] = None
    dependencies: dict[str, str] = field(default_factory=dict)
    dist: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to the manifest representation."""
        data = dict(self.raw)
        data["name"] = self.name
        data["version"] = self.version
        if self.main:
            data["main"] = self.main
        if self.dependencies:
            data["dependencies"] = dict(self.dependencies)
        return data

    @classmethod
    def from_dict(cls, data: dict, source: str = "manifest") -> "PackageInfo":
        """Create from manifest data.

        Args:
            data: Parsed manifest
            source: Description of where the data came from, used in errors

        Raises:
            InvalidPackageError: If name or version are missing
        """
        validate_manifest(data, source)

        dependencies = data.get("dependencies") or {}
        dist = data.get("dist") or {}

        return cls(
            name=data["name"],
            version=data["version"],
            main=data.get("main") or None,
            dependencies={str(k): str(v) for k, v in dependencies.items()},
            dist=dict(dist),
            raw=dict(data),
        )


def validate_manifest(data: Any, source: str = "manifest") -> None:
    """Validate the required manifest fields.

    Raises:
        InvalidPackageError: If the manifest is malformed
    """
    if not isinstance(data, dict):
        raise InvalidPackageError(f"Invalid plugin {source}, manifest must be an object")

    if not data.get("name") or not data.get("version"):
        raise InvalidPackageError(
            f"Invalid plugin {source}, 'name' and 'version' properties are required "
            f"in {MANIFEST_FILE}"
        )

    if not isinstance(data["name"], str) or not isinstance(data["version"], str):
        raise InvalidPackageError(
            f"Invalid plugin {source}, 'name' and 'version' must be strings"
        )

    dependencies = data.get("dependencies")
    if dependencies is not None and not isinstance(dependencies, dict):
        raise InvalidPackageError(f"Invalid plugin {source}, 'dependencies' must be an object")

    main = data.get("main")
    if main is not None and not isinstance(main, str):
        raise InvalidPackageError(f"Invalid plugin {source}, 'main' must be a string")


def read_manifest(location: Path) -> PackageInfo:
    """Read the manifest of a plugin directory.

    Args:
        location: Plugin directory

    Returns:
        PackageInfo built from the manifest

    Raises:
        InvalidPackageError: If the manifest is missing or malformed
    """
    manifest_path = Path(location) / MANIFEST_FILE
    if not manifest_path.is_file():
        raise InvalidPackageError(f"Invalid plugin {location}, {MANIFEST_FILE} is missing")

    try:
        with open(manifest_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
        raise InvalidPackageError(f"Invalid plugin {location}, bad {MANIFEST_FILE}: {e}") from e

    return PackageInfo.from_dict(data, str(location))


def write_manifest(location: Path, data: dict) -> Path:
    """Write a manifest into a plugin directory."""
    manifest_path = Path(location) / MANIFEST_FILE
    with open(manifest_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    return manifest_path
