"""Cooperative cancellation for long-running sync operations."""

import threading


class CancelToken:
    """Flag owned by the caller and observed by the executor.

    The executor only reads the token between file operations; setting it
    never interrupts a write that is already in flight.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def reset(self) -> None:
        self._event.clear()

    def __repr__(self) -> str:
        return f"<CancelToken(cancelled={self.is_cancelled})>"
