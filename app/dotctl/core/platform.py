"""Platform context for the reconciliation core.

Core components never read process-wide state (environment variables, the
home directory, the running OS) directly. Instead a PlatformContext is
captured once at the edge and injected at construction, which lets tests
simulate macOS, Linux and Windows hosts deterministically.
"""

from __future__ import annotations

import logging
import os
import platform
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from dotctl.core.errors import ResolutionError

logger = logging.getLogger(__name__)

MACOS = "macos"
LINUX = "linux"
WINDOWS = "windows"

SUPPORTED_PLATFORMS = (MACOS, LINUX, WINDOWS)


def _host_platform_name() -> str:
    """Map sys.platform onto a supported platform name."""
    if sys.platform == "darwin":
        return MACOS
    if sys.platform.startswith("win"):
        return WINDOWS
    return LINUX


def _home_from_environ(environ: Mapping[str, str]) -> Path | None:
    home = environ.get("HOME") or environ.get("USERPROFILE")
    if home:
        return Path(home)
    try:
        return Path.home()
    except RuntimeError:
        return None


def _config_dir_for(name: str, home: Path | None, environ: Mapping[str, str]) -> Path | None:
    if name == WINDOWS:
        appdata = environ.get("APPDATA")
        if appdata:
            return Path(appdata)
        return home / "AppData" / "Roaming" if home else None
    if name == LINUX:
        xdg = environ.get("XDG_CONFIG_HOME")
        if xdg:
            return Path(xdg)
    return home / ".config" if home else None


def _app_support_dir_for(name: str, home: Path | None, environ: Mapping[str, str]) -> Path | None:
    if name == MACOS:
        return home / "Library" / "Application Support" if home else None
    if name == WINDOWS:
        return _config_dir_for(name, home, environ)
    xdg = environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg)
    return home / ".local" / "share" if home else None


@dataclass(frozen=True, slots=True)
class PlatformContext:
    """Immutable snapshot of the host platform.

    A directory is None when it could not be determined; accessing it
    through the ``*_dir()`` methods then raises ResolutionError.

    Attributes:
        name: Platform name ("macos", "linux" or "windows").
        architecture: Machine architecture, e.g. "x86_64" or "arm64".
        home: Home directory.
        config: User configuration directory.
        app_support: Application support (data) directory.
    """

    name: str
    architecture: str
    home: Path | None
    config: Path | None
    app_support: Path | None

    @classmethod
    def detect(
        cls,
        target_platform: str = "auto",
        environ: Mapping[str, str] | None = None,
    ) -> PlatformContext:
        """Capture the platform context from the running process.

        Args:
            target_platform: "auto" to use the host platform, or one of
                "macos", "linux", "windows" to simulate another host's
                directory layout.
            environ: Environment mapping; defaults to os.environ.

        Returns:
            A PlatformContext for the selected platform.

        Raises:
            ValueError: If target_platform is not recognized.
        """
        env = os.environ if environ is None else environ
        if target_platform == "auto":
            name = _host_platform_name()
        elif target_platform in SUPPORTED_PLATFORMS:
            name = target_platform
        else:
            msg = f"Unsupported platform: {target_platform}"
            raise ValueError(msg)

        home = _home_from_environ(env)
        context = cls(
            name=name,
            architecture=platform.machine() or "unknown",
            home=home,
            config=_config_dir_for(name, home, env),
            app_support=_app_support_dir_for(name, home, env),
        )
        logger.debug("Detected platform context: %s", context)
        return context

    @classmethod
    def for_home(cls, name: str, home: Path, architecture: str = "x86_64") -> PlatformContext:
        """Build a context with conventional directories under ``home``.

        Environment overrides (XDG_*, APPDATA) are ignored.
        """
        return cls(
            name=name,
            architecture=architecture,
            home=home,
            config=_config_dir_for(name, home, {}),
            app_support=_app_support_dir_for(name, home, {}),
        )

    def current_platform(self) -> str:
        """Return the platform name."""
        return self.name

    def home_dir(self) -> Path:
        """Return the home directory.

        Raises:
            ResolutionError: If the home directory is unknown.
        """
        return self._require(self.home, "home")

    def config_dir(self) -> Path:
        """Return the user configuration directory.

        Raises:
            ResolutionError: If the directory is unknown.
        """
        return self._require(self.config, "config")

    def app_support_dir(self) -> Path:
        """Return the application support directory.

        Raises:
            ResolutionError: If the directory is unknown.
        """
        return self._require(self.app_support, "application support")

    def expand_path(self, path: str) -> Path:
        """Expand a leading ``~`` against the home directory.

        Args:
            path: Path string, possibly starting with "~" or "~/".

        Returns:
            The expanded path; other paths are returned unchanged.

        Raises:
            ResolutionError: If ``~`` is used and the home directory is unknown.
        """
        if path == "~":
            return self.home_dir()
        if path.startswith(("~/", "~\\")):
            return self.home_dir() / path[2:]
        return Path(path)

    @property
    def is_macos(self) -> bool:
        return self.name == MACOS

    @property
    def is_linux(self) -> bool:
        return self.name == LINUX

    @property
    def is_windows(self) -> bool:
        return self.name == WINDOWS

    def _require(self, value: Path | None, label: str) -> Path:
        if value is None:
            msg = f"Cannot determine {label} directory on {self.name}"
            raise ResolutionError(msg)
        return value
