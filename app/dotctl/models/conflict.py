"""Conflict resolution value types."""

from dataclasses import dataclass
from enum import Enum


class ExistingState(str, Enum):
    """What currently occupies a target path."""

    ABSENT = "absent"
    REGULAR_FILE = "regular_file"
    SYMLINK = "symlink"
    DIRECTORY = "directory"


class ConflictAction(str, Enum):
    """Decision kinds produced by the conflict table."""

    PROCEED = "proceed"
    SKIP = "skip"
    BACKUP_THEN_PROCEED = "backup_then_proceed"
    MERGE = "merge"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ConflictDecision:
    """Deterministic decision for one (state, policy, strategy) combination.

    Attributes:
        action: What the pipeline should do with the occupied target.
        reason: Explanation for ERROR decisions.
        warning: Diagnostic to surface when a requested policy degraded.
    """

    action: ConflictAction
    reason: str | None = None
    warning: str | None = None

    @property
    def requires_backup(self) -> bool:
        """Whether the pipeline must enter the BackingUp state."""
        return self.action == ConflictAction.BACKUP_THEN_PROCEED

    @property
    def is_destructive(self) -> bool:
        """Whether the decision leads to mutating the target."""
        return self.action in (
            ConflictAction.PROCEED,
            ConflictAction.BACKUP_THEN_PROCEED,
            ConflictAction.MERGE,
        )
