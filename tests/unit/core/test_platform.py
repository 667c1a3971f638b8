"""Unit tests for PlatformContext."""

from pathlib import Path

import pytest
from dotctl.core.errors import ResolutionError
from dotctl.core.platform import LINUX, MACOS, WINDOWS, PlatformContext


class TestDetect:
    """Tests for PlatformContext.detect with an injected environment."""

    def test_linux_defaults(self, tmp_path: Path) -> None:
        context = PlatformContext.detect("linux", {"HOME": str(tmp_path)})

        assert context.current_platform() == LINUX
        assert context.home_dir() == tmp_path
        assert context.config_dir() == tmp_path / ".config"
        assert context.app_support_dir() == tmp_path / ".local" / "share"

    def test_linux_respects_xdg(self, tmp_path: Path) -> None:
        env = {
            "HOME": str(tmp_path),
            "XDG_CONFIG_HOME": str(tmp_path / "cfg"),
            "XDG_DATA_HOME": str(tmp_path / "data"),
        }

        context = PlatformContext.detect("linux", env)

        assert context.config_dir() == tmp_path / "cfg"
        assert context.app_support_dir() == tmp_path / "data"

    def test_macos_layout(self, tmp_path: Path) -> None:
        context = PlatformContext.detect("macos", {"HOME": str(tmp_path)})

        assert context.is_macos
        assert context.config_dir() == tmp_path / ".config"
        assert context.app_support_dir() == tmp_path / "Library" / "Application Support"

    def test_windows_uses_appdata(self, tmp_path: Path) -> None:
        env = {"USERPROFILE": str(tmp_path), "APPDATA": str(tmp_path / "Roaming")}

        context = PlatformContext.detect("windows", env)

        assert context.is_windows
        assert context.home_dir() == tmp_path
        assert context.config_dir() == tmp_path / "Roaming"
        assert context.app_support_dir() == tmp_path / "Roaming"

    def test_unsupported_platform(self) -> None:
        with pytest.raises(ValueError, match="Unsupported platform"):
            PlatformContext.detect("solaris", {})


class TestAccessors:
    """Tests for directory accessors and path expansion."""

    def test_missing_directory_raises(self) -> None:
        context = PlatformContext(
            name=LINUX, architecture="x86_64", home=None, config=None, app_support=None
        )

        with pytest.raises(ResolutionError, match="home"):
            context.home_dir()
        with pytest.raises(ResolutionError):
            context.config_dir()

    def test_expand_path(self, tmp_path: Path) -> None:
        context = PlatformContext.for_home(MACOS, tmp_path)

        assert context.expand_path("~") == tmp_path
        assert context.expand_path("~/.zshrc") == tmp_path / ".zshrc"
        assert context.expand_path("/etc/hosts") == Path("/etc/hosts")

    def test_for_home_ignores_environment(self, tmp_path: Path) -> None:
        context = PlatformContext.for_home(WINDOWS, tmp_path)

        assert context.config_dir() == tmp_path / "AppData" / "Roaming"
