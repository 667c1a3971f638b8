"""Exception taxonomy for the reconciliation core.

Fatal conditions are raised as subclasses of DotctlError and converted into
failed DeploymentOutcome values at the Reconciler boundary. Recoverable
conditions (missing application, skip policy, permission warnings) never
raise; they are reported as outcome fields and diagnostics instead.
"""


class DotctlError(Exception):
    """Base exception for all dotctl errors."""


class ResourceValidationError(DotctlError, ValueError):
    """Raised when a resource declaration is malformed.

    Subclasses ValueError so that pydantic field validators can raise it
    directly and have it reported as a validation failure.
    """


class NotFoundError(DotctlError):
    """Raised when a source path does not exist at deploy time."""


class PermissionDeniedError(DotctlError):
    """Raised when the OS denies a write or removal needed for deployment."""


class ConflictError(DotctlError):
    """Raised when a conflict decision has no safe way to proceed."""


class BackupError(DotctlError):
    """Raised when a backup snapshot cannot be fully written.

    The original path is guaranteed to be untouched when this is raised.
    """


class ResolutionError(DotctlError):
    """Raised when a referenced system directory cannot be determined."""


class RenderError(DotctlError):
    """Raised when a template cannot be rendered.

    Attributes:
        template: Identifier of the offending template (usually its path).
    """

    def __init__(self, template: str, reason: str) -> None:
        self.template = template
        self.reason = reason
        super().__init__(f"Failed to render template {template}: {reason}")


class CancelledError(DotctlError):
    """Raised when a cancellation token fires before a destructive step."""
