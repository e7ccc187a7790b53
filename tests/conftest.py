"""Shared test fixtures."""

import tempfile
from pathlib import Path
import pytest

from liveplug.config import ManagerConfig
from liveplug.manager import PluginManager

from tests.fakes import GITHUB_URL, REGISTRY_URL, FakeRemote


@pytest.fixture
def temp_dir():
    """Temporary directory for tests."""
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def remote():
    """Fake npm registry and GitHub API."""
    return FakeRemote()


@pytest.fixture
def config(temp_dir):
    """Manager configuration pointing at the fake remote."""
    return ManagerConfig(
        cwd=temp_dir,
        npm_registry_url=REGISTRY_URL,
        github_api_url=GITHUB_URL,
        lock_wait=2000,
        host_manifest=None,
    )


@pytest.fixture
def manager(config, remote):
    """Plugin manager over a temporary store."""
    manager = PluginManager(config, transport=remote.transport)
    yield manager
    manager.loader.unload_all()
