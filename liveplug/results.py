"""Outcomes of the install decision tree."""

from dataclasses import dataclass
from enum import Enum

from liveplug.registry import PluginInfo


class InstallOutcome(str, Enum):
    """What an install call did."""

    REUSED = "reused"        # Installed version already satisfied the request
    REPLACED = "replaced"    # An incompatible version was uninstalled first
    INSTALLED = "installed"  # Nothing was installed under that name


@dataclass
class InstallResult:
    """Result of a plugin installation.

    Attributes:
        plugin: The installed (or reused) plugin
        outcome: What the install did
        materialized: Whether files were written to the store
    """

    plugin: PluginInfo
    outcome: InstallOutcome
    materialized: bool = False
