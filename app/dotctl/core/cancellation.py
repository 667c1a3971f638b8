"""Cooperative cancellation for reconciliation runs."""

import threading
import time

from dotctl.core.errors import CancelledError


class CancellationToken:
    """Signal shared between a caller and running reconciliations.

    The token is only consulted before destructive steps (backup and
    mutation). Work already past that point runs to completion; re-running
    the idempotent pipeline is the recovery path.

    Attributes:
        _event: Set when cancel() is called.
        _deadline: Monotonic time after which the token counts as cancelled.
    """

    def __init__(self, timeout: float | None = None) -> None:
        """Initialize the token.

        Args:
            timeout: Seconds from now after which the token expires on its own.
        """
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Whether cancellation was requested or the deadline has passed."""
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def raise_if_cancelled(self, step: str) -> None:
        """Raise CancelledError if the token has fired.

        Args:
            step: Name of the step about to start, for the error message.

        Raises:
            CancelledError: If cancelled.
        """
        if self.cancelled:
            msg = f"Cancelled before {step}"
            raise CancelledError(msg)
