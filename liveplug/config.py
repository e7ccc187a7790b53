"""Configuration for liveplug with validation."""

import importlib.metadata
import re
from pathlib import Path
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
import structlog
import toml

log = structlog.get_logger()

BASE_NPM_URL = "https://registry.npmjs.org"
DEFAULT_PLUGINS_DIRNAME = "plugin_packages"


def host_distribution_manifest(name: str) -> Optional[dict]:
    """Return the manifest of a distribution installed in the host environment.

    Args:
        name: Distribution name

    Returns:
        Dict with ``name`` and ``version``, or None if not installed
    """
    try:
        distribution = importlib.metadata.distribution(name)
    except (importlib.metadata.PackageNotFoundError, ValueError):
        return None

    return {"name": distribution.metadata["Name"] or name, "version": distribution.version}


class ManagerConfig(BaseModel):
    """Main configuration for a plugin manager with validation."""

    model_config = ConfigDict(validate_assignment=True, arbitrary_types_allowed=True)

    # Paths
    cwd: Path = Field(default_factory=Path.cwd)
    plugins_path: Optional[Path] = None  # Computed from cwd if None

    # Registry
    npm_registry_url: str = BASE_NPM_URL
    npm_registry_token: Optional[str] = None
    npm_registry_username: Optional[str] = None
    npm_registry_password: Optional[str] = None
    github_token: Optional[str] = None
    github_api_url: str = "https://api.github.com"
    http_timeout: float = Field(gt=0, default=30.0)

    # Lock (milliseconds)
    lock_wait: int = Field(gt=0, default=120000)
    lock_stale: int = Field(gt=0, default=180000)

    # Dependencies
    ignored_dependencies: list[Union[str, re.Pattern]] = Field(
        default_factory=lambda: [re.compile(r"^types-")]
    )
    static_dependencies: dict[str, Any] = Field(default_factory=dict)
    host_manifest: Optional[Callable[[str], Optional[dict]]] = host_distribution_manifest

    # Entry files
    default_main_file: str = "index.py"
    default_main_extension: str = ".py"

    # Logging
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR)$")
    log_file: Optional[Path] = None

    @field_validator("npm_registry_url", "github_api_url")
    @classmethod
    def url_not_empty(cls, v):
        if not v or not v.strip():
            raise ValueError("URL cannot be empty")
        return v.strip().rstrip("/")

    @field_validator("default_main_extension")
    @classmethod
    def extension_has_dot(cls, v):
        if not v.startswith("."):
            return "." + v
        return v

    @field_validator("ignored_dependencies")
    @classmethod
    def patterns_compile(cls, v):
        for pattern in v:
            if isinstance(pattern, str):
                try:
                    re.compile(pattern)
                except re.error as e:
                    raise ValueError(f"Invalid ignored dependency pattern '{pattern}': {e}")
        return v

    def model_post_init(self, __context):
        """Set computed values after initialization."""
        self.cwd = Path(self.cwd).expanduser()

        if self.plugins_path is None:
            self.plugins_path = self.cwd / DEFAULT_PLUGINS_DIRNAME
        else:
            self.plugins_path = Path(self.plugins_path).expanduser()

    @property
    def lock_path(self) -> Path:
        """Location of the store lock file."""
        return self.plugins_path / "install.lock"

    @classmethod
    def load(cls, path: Optional[str] = None, **overrides) -> "ManagerConfig":
        """Load configuration from TOML file.

        Search order if path not provided:
        1. ./liveplug.toml (project-specific)
        2. ~/.liveplug/config.toml (user default)

        Args:
            path: Optional explicit config file path
            **overrides: Values taking precedence over the file

        Returns:
            ManagerConfig instance
        """
        if path is None:
            candidates = [
                Path("liveplug.toml"),
                Path("~/.liveplug/config.toml").expanduser(),
            ]
            for candidate in candidates:
                if candidate.exists():
                    path = str(candidate)
                    log.info("config_found", path=path)
                    break

        data: dict[str, Any] = {}
        if path and Path(path).exists():
            try:
                data = toml.load(path)
                log.info("config_loaded", path=path)
            except (toml.TomlDecodeError, OSError) as e:
                log.error("config_load_failed", path=path, error=str(e))
                data = {}
        else:
            log.info("config_using_defaults")

        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**data)

    def save(self, path: str):
        """Save configuration to TOML file.

        Only serializable settings are written; the host probe and static
        dependencies are runtime objects.

        Args:
            path: File path to save to
        """
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        data = self.model_dump(
            mode="json",
            exclude={"host_manifest", "static_dependencies", "ignored_dependencies"},
            exclude_none=True,
        )
        data["ignored_dependencies"] = [
            p.pattern if isinstance(p, re.Pattern) else p for p in self.ignored_dependencies
        ]
        with open(path, "w") as f:
            toml.dump(data, f)
        log.info("config_saved", path=path)
