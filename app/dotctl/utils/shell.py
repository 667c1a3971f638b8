"""Subprocess helpers for application detection.

Detection only ever queries tools (``--version``, package databases), so
commands run with stdin closed, a C locale for parseable output, and a
timeout.
"""

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Captured result of a finished command.

    Attributes:
        stdout: Standard output, decoded with replacement of invalid bytes.
        stderr: Standard error, decoded likewise.
        returncode: Exit status.
    """

    stdout: str
    stderr: str
    returncode: int

    @property
    def success(self) -> bool:
        """Whether the command exited with status 0."""
        return self.returncode == 0


def run_command(args: list[str], *, timeout: float | None = DEFAULT_TIMEOUT) -> CommandResult:
    """Run a query command and capture its output.

    Args:
        args: Command and arguments.
        timeout: Seconds to wait before giving up.

    Returns:
        CommandResult; a non-zero exit is not an error here.

    Raises:
        subprocess.TimeoutExpired: If the command exceeds ``timeout``.
        OSError: If the executable cannot be started.
    """
    logger.debug("Running %s", " ".join(args))
    result = subprocess.run(
        args,
        stdin=subprocess.DEVNULL,
        capture_output=True,
        text=True,
        errors="replace",
        check=False,
        timeout=timeout,
        env={**os.environ, "LC_ALL": "C"},
    )
    return CommandResult(
        stdout=result.stdout,
        stderr=result.stderr,
        returncode=result.returncode,
    )


def find_command(name: str) -> str | None:
    """Absolute path of an executable on PATH, or None."""
    return shutil.which(name)


def command_exists(name: str) -> bool:
    """Check whether an executable is on PATH."""
    return find_command(name) is not None
