"""Application detection models.

Detection methods are a closed set of tags; the detector maps each tag to
one handler function. New methods are added by extending DetectionMethod.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class DetectionMethod(str, Enum):
    """Available application detection methods.

    Attributes:
        COMMAND: Executable resolvable on the search path.
        FILE: Conventional install location exists.
        BREW_CASK: Homebrew cask database lists the application.
        PACKAGE_MANAGER: System package database lists the application.
    """

    COMMAND = "command"
    FILE = "file"
    BREW_CASK = "brew_cask"
    PACKAGE_MANAGER = "package_manager"


DEFAULT_DETECTION_METHODS: tuple[DetectionMethod, ...] = (
    DetectionMethod.COMMAND,
    DetectionMethod.FILE,
)

METHOD_DISABLED = "disabled"
METHOD_NOT_FOUND = "not_found"
UNKNOWN_VERSION = "unknown"


@dataclass(frozen=True, slots=True)
class DetectionResult:
    """Outcome of detecting an external application.

    Produced fresh on every reconciliation and never persisted as ground truth.

    Attributes:
        installed: Whether the application was found.
        version: Detected version, "unknown" if found but unobtainable,
            empty if not found.
        installation_path: Where the application was found, if known.
        method: The method that succeeded, or "disabled"/"not_found".
    """

    installed: bool
    version: str = ""
    installation_path: str = ""
    method: str = METHOD_NOT_FOUND

    @classmethod
    def disabled(cls) -> DetectionResult:
        """Result used when detection is switched off: trust, not failure."""
        return cls(installed=True, method=METHOD_DISABLED)

    @classmethod
    def not_found(cls) -> DetectionResult:
        """Result used when no method detected the application."""
        return cls(installed=False, method=METHOD_NOT_FOUND)

    @classmethod
    def found(
        cls,
        method: DetectionMethod,
        *,
        version: str | None = None,
        installation_path: str = "",
    ) -> DetectionResult:
        """Positive result for the given method.

        Args:
            method: Method that detected the application.
            version: Extracted version; falls back to "unknown".
            installation_path: Where the application lives.

        Returns:
            DetectionResult with installed=True.
        """
        return cls(
            installed=True,
            version=version or UNKNOWN_VERSION,
            installation_path=installation_path,
            method=method.value,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary for JSON output."""
        return {
            "installed": self.installed,
            "version": self.version,
            "installation_path": self.installation_path,
            "method": self.method,
        }
