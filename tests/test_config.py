"""Tests for the configuration module."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from agentcast.config import (
    Config,
    deep_merge,
    get_config,
    get_config_paths,
    get_project_config_path,
    get_user_config_path,
    load_config,
    reset_config,
)


class TestDeepMerge:
    """Test the deep merge algorithm."""

    def test_simple_override(self) -> None:
        """Test that override values replace base values."""
        result = deep_merge({"a": 1, "b": 2}, {"b": 3, "c": 4})
        assert result == {"a": 1, "b": 3, "c": 4}

    def test_nested_merge(self) -> None:
        """Test that nested dicts are recursively merged."""
        base = {"server": {"host": "0.0.0.0", "port": 1}}
        result = deep_merge(base, {"server": {"port": 2}})
        assert result == {"server": {"host": "0.0.0.0", "port": 2}}

    def test_none_does_not_override(self) -> None:
        """Test that None values in override don't replace base values."""
        assert deep_merge({"a": 1}, {"a": None}) == {"a": 1}

    def test_base_not_mutated(self) -> None:
        """The inputs are left untouched."""
        base = {"server": {"port": 1}}
        deep_merge(base, {"server": {"port": 2}})
        assert base == {"server": {"port": 1}}


class TestConfigPaths:
    """Test platform-specific path resolution."""

    def test_windows_user_path(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test Windows user config path uses APPDATA."""
        monkeypatch.setattr(sys, "platform", "win32")
        monkeypatch.setenv("APPDATA", "C:\\Users\\Test\\AppData\\Roaming")
        path = get_user_config_path()
        assert path is not None
        assert path.parts[-2:] == ("agentcast", "config.yaml")

    def test_unix_user_path_xdg(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test Unix user config path respects XDG_CONFIG_HOME."""
        monkeypatch.setattr(sys, "platform", "linux")
        monkeypatch.setenv("XDG_CONFIG_HOME", "/home/test/.config-custom")
        assert get_user_config_path() == Path("/home/test/.config-custom/agentcast/config.yaml")

    def test_project_config_path(self) -> None:
        """Test project config path is under .agentcast."""
        assert get_project_config_path("/proj") == Path("/proj/.agentcast/config.yaml")

    def test_get_config_paths_order(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that config paths are in correct priority order."""
        monkeypatch.setattr(sys, "platform", "linux")
        paths = get_config_paths("/proj")
        assert paths[-1] == Path("/proj/.agentcast/config.yaml")
        assert len(paths) == 2


class TestConfigLoading:
    """Test configuration loading."""

    @pytest.fixture
    def project_dir(self, tmp_path: Path) -> Path:
        """Create a project with an empty .agentcast directory."""
        (tmp_path / ".agentcast").mkdir()
        return tmp_path

    def _write(self, project_dir: Path, text: str) -> None:
        (project_dir / ".agentcast" / "config.yaml").write_text(text)

    def test_defaults(self, tmp_path: Path) -> None:
        """Test that missing config files use defaults."""
        config = load_config(project_root=tmp_path)
        assert isinstance(config, Config)
        assert config.server.port == 8629
        assert config.server.host == "127.0.0.1"
        assert config.viewer.merge_window == 10.0
        assert config.viewer.reconnect_attempts == 5

    def test_load_yaml_config(self, project_dir: Path) -> None:
        """Test loading a valid YAML config file."""
        self._write(
            project_dir,
            """
server:
  port: 9000
viewer:
  merge_window: 4.5
logging:
  verbose: 3
""",
        )
        config = load_config(project_root=project_dir)
        assert config.server.port == 9000
        assert config.server.host == "127.0.0.1"
        assert config.viewer.merge_window == 4.5
        assert config.logging.verbose == 3

    def test_project_overrides_user(
        self, project_dir: Path, tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Project config wins over user config."""
        xdg = tmp_path_factory.mktemp("user")
        (xdg / "agentcast").mkdir()
        (xdg / "agentcast" / "config.yaml").write_text("server:\n  port: 7000\n  host: 0.0.0.0\n")
        monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg))
        monkeypatch.setattr(sys, "platform", "linux")
        self._write(project_dir, "server:\n  port: 7001\n")

        config = load_config(project_root=project_dir)
        assert config.server.port == 7001
        assert config.server.host == "0.0.0.0"

    def test_env_overrides_config(self, project_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that AGENTCAST_* variables win over files."""
        self._write(project_dir, "server:\n  port: 9000\n")
        monkeypatch.setenv("AGENTCAST_PORT", "9100")
        monkeypatch.setenv("AGENTCAST_HOST", "::1")
        monkeypatch.setenv("AGENTCAST_LOG", "/tmp/agentcast.log")

        config = load_config(project_root=project_dir)
        assert config.server.port == 9100
        assert config.server.host == "::1"
        assert config.logging.file == "/tmp/agentcast.log"

    def test_bad_port_env_ignored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A non-numeric AGENTCAST_PORT is ignored."""
        monkeypatch.setenv("AGENTCAST_PORT", "eighty")
        assert load_config(reload=True).server.port == 8629

    def test_invalid_yaml_uses_defaults(self, project_dir: Path) -> None:
        """Test that invalid YAML falls back to defaults."""
        self._write(project_dir, "server: [unclosed")
        config = load_config(project_root=project_dir)
        assert config.server.port == 8629

    def test_extra_fields_preserved(self, project_dir: Path) -> None:
        """Unknown sections are kept for host applications."""
        self._write(project_dir, "session_engine:\n  name: demo\n")
        config = load_config(project_root=project_dir)
        assert config.extra == {"session_engine": {"name": "demo"}}


class TestConfigCaching:
    """Test config caching behavior."""

    def test_get_config_caches(self) -> None:
        """Test that get_config returns cached config."""
        assert get_config() is get_config()

    def test_reset_clears_cache(self) -> None:
        """Test that reset_config clears the cache."""
        config1 = get_config()
        reset_config()
        assert get_config() is not config1

    def test_project_config_not_cached(self, tmp_path: Path) -> None:
        """Test that project-specific config is not globally cached."""
        project_config = load_config(project_root=tmp_path)
        assert project_config is not get_config()
