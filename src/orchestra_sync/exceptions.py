"""Error types raised by the synchronization engine."""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .core.sync.executor import ExecutionResult


class SyncError(Exception):
    """Base class for synchronization errors."""

    pass


class ScopeFatalError(SyncError):
    """An error that stops all remaining work for a sync scope.

    Actions completed before the error keep their committed baseline. The
    partial execution result, when execution had started, is attached as
    ``result``.
    """

    def __init__(
        self,
        message: str,
        scope_id: Optional[str] = None,
        result: Optional["ExecutionResult"] = None,
    ) -> None:
        super().__init__(message)
        self.scope_id = scope_id
        self.result = result


class PathNotAccessibleError(ScopeFatalError):
    """A sync root does not exist or cannot be reached."""

    pass


class DeviceDisconnectedError(ScopeFatalError):
    """The device's mount point disappeared during an operation."""

    pass


class ScopeBusyError(SyncError):
    """Another diff or execution is already running for the scope."""

    def __init__(self, scope_id: str) -> None:
        super().__init__(f"A sync operation is already active for scope {scope_id}")
        self.scope_id = scope_id


class ProfileNotFoundError(SyncError, LookupError):
    """No sync profile exists with the requested id."""

    pass


class DeviceNotFoundError(SyncError, LookupError):
    """No device exists with the requested id."""

    pass


class FileOperationError(SyncError):
    """A single file operation failed."""

    def __init__(self, relative_path: str, message: str) -> None:
        super().__init__(f"{relative_path}: {message}")
        self.relative_path = relative_path
        self.message = message
