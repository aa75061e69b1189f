"""Root pytest configuration for all tests."""

from __future__ import annotations

import pytest

from agentcast.config import reset_config

# Configure pytest-asyncio to use auto mode
# This is redundant with pyproject.toml but ensures it's set
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(scope="session")
def anyio_backend():
    """Set anyio backend to asyncio."""
    return "asyncio"


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory):
    """Keep the developer's own config files and AGENTCAST_* vars out of tests."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path_factory.mktemp("xdg")))
    for name in ("AGENTCAST_PORT", "AGENTCAST_HOST", "AGENTCAST_LOG"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()
