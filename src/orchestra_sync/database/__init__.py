"""Database package: ORM models, persistence service and progress events."""

from .models import (
    Base,
    Device,
    DeviceFileHash,
    FileBaseline,
    OperationStatus,
    ScopeType,
    SyncOperation,
    SyncProfile,
)
from .progress_tracker import (
    CallbackSink,
    ConsoleProgressReporter,
    DiffComplete,
    DiffProgress,
    NullSink,
    ProgressCallback,
    ProgressEvent,
    ProgressEventType,
    ProgressSink,
    ProgressTracker,
    QueueSink,
    ScanComplete,
    ScanProgress,
    ScanStarted,
    SyncComplete,
    SyncErrorEvent,
    SyncProgress,
    SyncStarted,
    TqdmProgressReporter,
)
from .service import DatabaseService

__all__ = [
    # Models
    "Base",
    "SyncProfile",
    "Device",
    "FileBaseline",
    "DeviceFileHash",
    "SyncOperation",
    "ScopeType",
    "OperationStatus",
    # Database service
    "DatabaseService",
    # Progress events
    "ProgressEvent",
    "ProgressEventType",
    "ScanStarted",
    "ScanProgress",
    "ScanComplete",
    "DiffProgress",
    "DiffComplete",
    "SyncStarted",
    "SyncProgress",
    "SyncComplete",
    "SyncErrorEvent",
    # Sinks and reporters
    "ProgressSink",
    "ProgressCallback",
    "ProgressTracker",
    "CallbackSink",
    "QueueSink",
    "NullSink",
    "ConsoleProgressReporter",
    "TqdmProgressReporter",
]
