"""POSIX permission parsing and enforcement.

Mode changes happen after the deployment itself succeeded, so failures here
are collected as warnings instead of being raised.
"""

import logging
import os
import re
import stat
from dataclasses import dataclass, field
from pathlib import Path

from dotctl.core.errors import ResourceValidationError

logger = logging.getLogger(__name__)

_MODE_PATTERN = re.compile(r"^0?[0-7]{3}$")

MAX_MODE = 0o777
DEFAULT_FILE_MODE = "0644"
DEFAULT_DIRECTORY_MODE = "0755"


def parse_mode(mode: str) -> int:
    """Parse an octal permission string.

    Args:
        mode: Three or four digit octal string, e.g. "644" or "0755".

    Returns:
        The mode as an integer.

    Raises:
        ResourceValidationError: If the string is not a valid octal mode.
    """
    text = mode.strip()
    if not _MODE_PATTERN.match(text):
        msg = f"Invalid permission mode {mode!r}: expected octal like '0644'"
        raise ResourceValidationError(msg)
    value = int(text, 8)
    if value > MAX_MODE:
        msg = f"Invalid permission mode {mode!r}: exceeds 0777"
        raise ResourceValidationError(msg)
    return value


def format_mode(mode: int) -> str:
    """Format a mode as a four digit octal string, e.g. 0o644 -> "0644"."""
    return f"{stat.S_IMODE(mode):04o}"


def mode_warnings(mode: int) -> list[str]:
    """Return warnings for risky but valid modes."""
    warnings: list[str] = []
    if mode == 0:
        warnings.append("mode 0000 makes the file inaccessible")
    elif mode & stat.S_IWOTH:
        warnings.append(f"mode {format_mode(mode)} is world-writable")
    return warnings


@dataclass(slots=True)
class PermissionOutcome:
    """Result of applying modes to a path.

    Attributes:
        applied_mode: Mode applied to the top-level path, if any.
        changed: Number of filesystem entries whose mode was changed.
        warnings: Non-fatal problems encountered.
    """

    applied_mode: str | None = None
    changed: int = 0
    warnings: list[str] = field(default_factory=list)


class PermissionEnforcer:
    """Applies requested modes to deployed artifacts.

    Attributes:
        _dry_run: If True, report what would change without calling chmod.
    """

    def __init__(self, *, dry_run: bool = False) -> None:
        self._dry_run = dry_run

    def apply_mode(
        self,
        path: Path,
        file_mode: str | None,
        dir_mode: str | None,
        recursive: bool = False,
        *,
        is_directory: bool | None = None,
    ) -> PermissionOutcome:
        """Apply file and directory modes to ``path``.

        The top-level path gets ``file_mode`` if it is a file and
        ``dir_mode`` if it is a directory. With ``recursive``, every file
        and subdirectory below a directory gets the matching mode too.
        Modes are applied through symlinks.

        Args:
            path: Deployed artifact.
            file_mode: Octal mode string for files, or None to leave files alone.
            dir_mode: Octal mode string for directories, or None.
            recursive: Walk directory trees.
            is_directory: Kind of the artifact when it may not exist yet
                (dry runs); probed from the filesystem when None.

        Returns:
            PermissionOutcome with any warnings.

        Raises:
            ResourceValidationError: If a mode string is malformed.
        """
        file_bits = parse_mode(file_mode) if file_mode is not None else None
        dir_bits = parse_mode(dir_mode) if dir_mode is not None else None

        outcome = PermissionOutcome()
        for bits in (file_bits, dir_bits):
            if bits is not None:
                outcome.warnings.extend(mode_warnings(bits))

        if file_bits is None and dir_bits is None:
            return outcome

        is_dir = path.is_dir() if is_directory is None else is_directory
        top_bits = dir_bits if is_dir else file_bits
        if top_bits is not None:
            outcome.applied_mode = format_mode(top_bits)
            self._chmod(path, top_bits, outcome)

        if recursive and is_dir:
            for root, dirs, files in os.walk(path):
                root_path = Path(root)
                if dir_bits is not None:
                    for name in dirs:
                        self._chmod(root_path / name, dir_bits, outcome)
                if file_bits is not None:
                    for name in files:
                        self._chmod(root_path / name, file_bits, outcome)

        return outcome

    def _chmod(self, path: Path, mode: int, outcome: PermissionOutcome) -> None:
        if self._dry_run:
            logger.info("Dry-run: would chmod %s to %s", path, format_mode(mode))
            return
        try:
            os.chmod(path, mode)
            outcome.changed += 1
        except OSError as e:
            logger.warning("Failed to set mode %s on %s: %s", format_mode(mode), path, e)
            outcome.warnings.append(f"could not set mode {format_mode(mode)} on {path}: {e}")
