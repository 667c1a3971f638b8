"""Reconciliation outcome models.

A DeploymentOutcome is the terminal value of one reconciliation. It carries
the recoverable conditions (skips, warnings) as data so callers never have
to catch exceptions for them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from dotctl.models.detection import DetectionResult


class ReconcileState(str, Enum):
    """States of the per-resource reconciliation pipeline."""

    PENDING = "pending"
    DETECTING = "detecting"
    SKIPPED = "skipped"
    GATED_WARN = "gated_warn"
    CONTINUING = "continuing"
    RESOLVING_CONFLICT = "resolving_conflict"
    BACKING_UP = "backing_up"
    DEPLOYING = "deploying"
    SETTING_PERMISSIONS = "setting_permissions"
    DONE = "done"
    FAILED = "failed"


class Severity(str, Enum):
    """Diagnostic severity."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """A single message produced while reconciling a resource.

    Attributes:
        severity: How serious the message is.
        message: Human-readable text.
        state: Pipeline state that produced the message.
    """

    severity: Severity
    message: str
    state: ReconcileState | None = None

    @property
    def is_informational(self) -> bool:
        """Whether this diagnostic is purely informational."""
        return self.severity == Severity.INFO

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON storage."""
        result: dict[str, Any] = {"severity": self.severity.value, "message": self.message}
        if self.state is not None:
            result["state"] = self.state.value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Diagnostic:
        """Deserialize from dictionary."""
        state = data.get("state")
        return cls(
            severity=Severity(data["severity"]),
            message=data["message"],
            state=ReconcileState(state) if state else None,
        )


@dataclass(frozen=True, slots=True)
class BackupRecord:
    """Snapshot of a target taken immediately before a destructive mutation.

    Attributes:
        original_path: Path that was backed up.
        backup_path: Where the snapshot lives (``.gz`` suffix if compressed).
        timestamp: ISO 8601 time the snapshot was taken.
        format: Backup naming scheme ("simple" or "timestamped").
        compressed: Whether the snapshot was gzip-compressed.
    """

    original_path: str
    backup_path: str
    timestamp: str
    format: str
    compressed: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON storage."""
        return {
            "original_path": self.original_path,
            "backup_path": self.backup_path,
            "timestamp": self.timestamp,
            "format": self.format,
            "compressed": self.compressed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BackupRecord:
        """Deserialize from dictionary."""
        return cls(
            original_path=data["original_path"],
            backup_path=data["backup_path"],
            timestamp=data["timestamp"],
            format=data["format"],
            compressed=data.get("compressed", False),
        )


@dataclass(frozen=True, slots=True)
class DeploymentOutcome:
    """Terminal value of one resource reconciliation.

    Attributes:
        resource_id: Identifier of the reconciled resource.
        success: False only when the pipeline ended in the Failed state.
        applied_path: Resolved target path, if resolution succeeded.
        applied_mode: Mode of the deployed artifact, e.g. "0644".
        skipped: True when a gate or the skip policy left the target untouched.
        dry_run: Whether the run was a dry run.
        final_state: Last pipeline state reached (DONE or FAILED).
        diagnostics: Ordered warnings, errors and informational messages.
        detection: Detection result when the resource has an application gate.
        backup: Backup taken before mutation, if any.
        decision: Conflict decision action, if the pipeline got that far.
    """

    resource_id: str
    success: bool
    applied_path: str | None = None
    applied_mode: str | None = None
    skipped: bool = False
    dry_run: bool = False
    final_state: ReconcileState = ReconcileState.DONE
    diagnostics: tuple[Diagnostic, ...] = field(default_factory=tuple)
    detection: DetectionResult | None = None
    backup: BackupRecord | None = None
    decision: str | None = None

    @property
    def warnings(self) -> tuple[Diagnostic, ...]:
        """Warning diagnostics only."""
        return tuple(d for d in self.diagnostics if d.severity == Severity.WARNING)

    @property
    def errors(self) -> tuple[Diagnostic, ...]:
        """Error diagnostics only."""
        return tuple(d for d in self.diagnostics if d.severity == Severity.ERROR)

    @property
    def error(self) -> str | None:
        """Message of the first error diagnostic, if any."""
        errors = self.errors
        return errors[0].message if errors else None

    def non_informational(self) -> tuple[Diagnostic, ...]:
        """Diagnostics that are warnings or errors."""
        return tuple(d for d in self.diagnostics if not d.is_informational)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON storage."""
        result: dict[str, Any] = {
            "resource_id": self.resource_id,
            "success": self.success,
            "applied_path": self.applied_path,
            "applied_mode": self.applied_mode,
            "skipped": self.skipped,
            "dry_run": self.dry_run,
            "final_state": self.final_state.value,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
            "decision": self.decision,
        }
        if self.detection is not None:
            result["detection"] = self.detection.to_dict()
        if self.backup is not None:
            result["backup"] = self.backup.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeploymentOutcome:
        """Deserialize from dictionary.

        Raises:
            KeyError: If required fields are missing.
            ValueError: If enum values are invalid.
        """
        detection_data = data.get("detection")
        backup_data = data.get("backup")
        return cls(
            resource_id=data["resource_id"],
            success=data["success"],
            applied_path=data.get("applied_path"),
            applied_mode=data.get("applied_mode"),
            skipped=data.get("skipped", False),
            dry_run=data.get("dry_run", False),
            final_state=ReconcileState(data.get("final_state", ReconcileState.DONE.value)),
            diagnostics=tuple(Diagnostic.from_dict(d) for d in data.get("diagnostics", [])),
            detection=DetectionResult(**detection_data) if detection_data else None,
            backup=BackupRecord.from_dict(backup_data) if backup_data else None,
            decision=data.get("decision"),
        )
