"""Recorded reconciliation history.

Each live run appends one JSON line per resource outcome, so the history
file doubles as an audit log of what dotctl changed and when.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from dotctl.core.paths import ensure_state_dir, get_state_dir
from dotctl.models.outcome import DeploymentOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    """One recorded resource outcome.

    Attributes:
        id: Unique identifier (12-character hex string from UUID).
        run_id: Identifier shared by all outcomes of one apply run.
        timestamp: When the outcome was recorded (ISO 8601 with timezone).
        outcome: The recorded DeploymentOutcome.
    """

    id: str
    run_id: str
    timestamp: str
    outcome: DeploymentOutcome

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON storage."""
        return {
            "id": self.id,
            "run_id": self.run_id,
            "timestamp": self.timestamp,
            "outcome": self.outcome.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryEntry:
        """Deserialize from dictionary.

        Raises:
            KeyError: If required fields are missing.
            ValueError: If outcome data is invalid.
        """
        return cls(
            id=data["id"],
            run_id=data["run_id"],
            timestamp=data["timestamp"],
            outcome=DeploymentOutcome.from_dict(data["outcome"]),
        )

    def to_json_line(self) -> str:
        """Serialize to JSON line for JSONL storage (no trailing newline)."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_json_line(cls, line: str) -> HistoryEntry:
        """Deserialize from JSON line.

        Raises:
            json.JSONDecodeError: If line is not valid JSON.
            KeyError: If required fields are missing.
            ValueError: If data is invalid.
        """
        return cls.from_dict(json.loads(line.strip()))


def new_run_id() -> str:
    """Generate an identifier for one apply run."""
    return uuid.uuid4().hex[:12]


class StateManager:
    """Manages reconciliation history in a JSONL file.

    Storage location: ~/.local/state/dotctl/history.jsonl

    Attributes:
        state_dir: Directory containing the history file.
    """

    HISTORY_FILENAME = "history.jsonl"

    def __init__(self, state_dir: Path | None = None) -> None:
        """Initialize StateManager.

        Args:
            state_dir: Optional override for state directory.
                      Default: ~/.local/state/dotctl
        """
        self._state_dir = state_dir if state_dir is not None else get_state_dir()

    @property
    def history_path(self) -> Path:
        """Path to history.jsonl file."""
        return self._state_dir / self.HISTORY_FILENAME

    def record_outcomes(self, outcomes: list[DeploymentOutcome], run_id: str | None = None) -> str:
        """Append outcomes of one run to the history file.

        Dry-run outcomes are not recorded, since they changed nothing.

        Args:
            outcomes: Outcomes to record.
            run_id: Identifier for the run; generated if None.

        Returns:
            The run identifier used.

        Raises:
            RuntimeError: If the state directory cannot be created.
            OSError: If the file cannot be written.
        """
        run_id = run_id or new_run_id()
        entries = [
            HistoryEntry(
                id=uuid.uuid4().hex[:12],
                run_id=run_id,
                timestamp=datetime.now(UTC).isoformat(),
                outcome=outcome,
            )
            for outcome in outcomes
            if not outcome.dry_run
        ]
        if not entries:
            return run_id

        if self._state_dir == get_state_dir():
            ensure_state_dir()
        else:
            self._state_dir.mkdir(parents=True, exist_ok=True)

        with self.history_path.open(mode="a", encoding="utf-8") as f:
            for entry in entries:
                f.write(entry.to_json_line() + "\n")
            f.flush()
        return run_id

    def get_history(self, limit: int | None = None) -> list[HistoryEntry]:
        """Read history entries, newest first.

        Args:
            limit: Maximum number of entries to return, or None for all.

        Returns:
            List of HistoryEntry, newest first; empty if no history exists.
        """
        if not self.history_path.exists():
            return []

        entries: list[HistoryEntry] = []
        with self.history_path.open(encoding="utf-8") as f:
            for line_num, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(HistoryEntry.from_json_line(line))
                except (json.JSONDecodeError, KeyError, ValueError, TypeError) as e:
                    logger.warning("Skipping corrupt history line %d: %s", line_num, str(e))

        entries.reverse()
        if limit is not None:
            return entries[:limit]
        return entries

    def last_outcome(self, resource_id: str) -> DeploymentOutcome | None:
        """Most recent recorded outcome for a resource, if any."""
        for entry in self.get_history():
            if entry.outcome.resource_id == resource_id:
                return entry.outcome
        return None
