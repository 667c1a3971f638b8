"""Detection method handlers.

Each handler takes an application name and a platform context and returns a
DetectionResult. A handler reports absence as a negative result; it may
raise, and the detector turns any exception into a negative result for
that method only.
"""

import logging
import plistlib
from collections.abc import Callable
from pathlib import Path
from xml.parsers.expat import ExpatError

from dotctl.core.platform import PlatformContext
from dotctl.detection.version import extract_version
from dotctl.models.detection import DetectionMethod, DetectionResult
from dotctl.utils.shell import command_exists, find_command, run_command

logger = logging.getLogger(__name__)

QUERY_TIMEOUT = 10.0

Handler = Callable[[str, PlatformContext], DetectionResult]

_NEGATIVE = DetectionResult(installed=False, method="")


def detect_by_command(name: str, platform: PlatformContext) -> DetectionResult:
    """Detect an executable on the search path and ask it for its version."""
    path = find_command(name)
    if path is None:
        return _NEGATIVE
    version = None
    result = run_command([path, "--version"], timeout=QUERY_TIMEOUT)
    if result.success:
        version = extract_version(result.stdout) or extract_version(result.stderr)
    return DetectionResult.found(DetectionMethod.COMMAND, version=version, installation_path=path)


def install_locations(name: str, platform: PlatformContext) -> list[Path]:
    """Conventional install locations for ``name`` on ``platform``."""
    capitalized = name[:1].upper() + name[1:]
    if platform.is_macos:
        return [
            Path("/Applications") / f"{capitalized}.app",
            Path("/Applications") / f"{name}.app",
            Path("/System/Applications") / f"{capitalized}.app",
        ]
    if platform.is_windows:
        return [
            Path("C:/Program Files") / capitalized,
            Path("C:/Program Files (x86)") / capitalized,
        ]
    return [
        Path("/usr/bin") / name,
        Path("/usr/local/bin") / name,
        Path("/opt") / name,
    ]


def _bundle_version(app_path: Path) -> str | None:
    """Read CFBundleShortVersionString from a macOS app bundle."""
    info = app_path / "Contents" / "Info.plist"
    if not info.is_file():
        return None
    try:
        with open(info, "rb") as f:
            data = plistlib.load(f)
    except (OSError, plistlib.InvalidFileException, ExpatError) as e:
        logger.debug("Cannot read %s: %s", info, e)
        return None
    if not isinstance(data, dict):
        logger.debug("Unexpected plist root in %s", info)
        return None
    version = data.get("CFBundleShortVersionString")
    return str(version) if version else None


def detect_by_file(name: str, platform: PlatformContext) -> DetectionResult:
    """Detect an application by its conventional install location."""
    for candidate in install_locations(name, platform):
        if candidate.exists():
            version = _bundle_version(candidate) if candidate.suffix == ".app" else None
            return DetectionResult.found(
                DetectionMethod.FILE,
                version=version,
                installation_path=str(candidate),
            )
    return _NEGATIVE


def _second_field(output: str) -> str | None:
    """Version from ``<name> <version>`` style output."""
    parts = output.strip().split()
    return parts[1] if len(parts) > 1 else None


def detect_by_brew_cask(name: str, platform: PlatformContext) -> DetectionResult:
    """Detect a Homebrew cask."""
    brew = find_command("brew")
    if brew is None:
        return _NEGATIVE
    result = run_command([brew, "list", "--cask", "--versions", name], timeout=QUERY_TIMEOUT)
    if not result.success or not result.stdout.strip():
        return _NEGATIVE
    return DetectionResult.found(
        DetectionMethod.BREW_CASK,
        version=_second_field(result.stdout),
    )


def _query_dpkg(name: str) -> DetectionResult | None:
    if not command_exists("dpkg-query"):
        return None
    result = run_command(
        ["dpkg-query", "-W", "-f=${Status}\t${Version}", name],
        timeout=QUERY_TIMEOUT,
    )
    if not result.success:
        return None
    status, _, version = result.stdout.partition("\t")
    if "installed" not in status.split():
        return None
    return DetectionResult.found(DetectionMethod.PACKAGE_MANAGER, version=version.strip())


def _query_rpm(name: str) -> DetectionResult | None:
    if not command_exists("rpm"):
        return None
    result = run_command(["rpm", "-q", "--qf", "%{VERSION}", name], timeout=QUERY_TIMEOUT)
    if not result.success:
        return None
    return DetectionResult.found(DetectionMethod.PACKAGE_MANAGER, version=result.stdout.strip())


def _query_pacman(name: str) -> DetectionResult | None:
    if not command_exists("pacman"):
        return None
    result = run_command(["pacman", "-Q", name], timeout=QUERY_TIMEOUT)
    if not result.success:
        return None
    return DetectionResult.found(
        DetectionMethod.PACKAGE_MANAGER,
        version=_second_field(result.stdout),
    )


def detect_by_package_manager(name: str, platform: PlatformContext) -> DetectionResult:
    """Detect an application in the platform's package database.

    macOS queries Homebrew formulae. Linux tries dpkg, rpm and pacman in
    that order. Windows has no supported package database.
    """
    if platform.is_macos:
        brew = find_command("brew")
        if brew is None:
            return _NEGATIVE
        result = run_command([brew, "list", "--versions", name], timeout=QUERY_TIMEOUT)
        if not result.success or not result.stdout.strip():
            return _NEGATIVE
        return DetectionResult.found(
            DetectionMethod.PACKAGE_MANAGER,
            version=_second_field(result.stdout),
        )

    if platform.is_linux:
        for query in (_query_dpkg, _query_rpm, _query_pacman):
            found = query(name)
            if found is not None:
                return found

    return _NEGATIVE


HANDLERS: dict[DetectionMethod, Handler] = {
    DetectionMethod.COMMAND: detect_by_command,
    DetectionMethod.FILE: detect_by_file,
    DetectionMethod.BREW_CASK: detect_by_brew_cask,
    DetectionMethod.PACKAGE_MANAGER: detect_by_package_manager,
}
