"""Progress events for scan, diff and sync operations.

Producers write typed events to a ``ProgressSink``; exactly one sink listens
per operation and receives events in order. Events are emitted per file,
never per byte.
"""

import logging
import queue
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, Optional

from tqdm import tqdm

logger = logging.getLogger(__name__)


class ProgressEventType(str, Enum):
    """Tags of the progress event stream."""

    SCAN_STARTED = "scan-started"
    SCAN_PROGRESS = "scan-progress"
    SCAN_COMPLETE = "scan-complete"
    DIFF_PROGRESS = "diff-progress"
    DIFF_COMPLETE = "diff-complete"
    SYNC_STARTED = "sync-started"
    SYNC_PROGRESS = "sync-progress"
    SYNC_COMPLETE = "sync-complete"
    SYNC_ERROR = "sync-error"


@dataclass
class ProgressEvent:
    """Base class for progress events."""

    event_type: ClassVar[ProgressEventType]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize as a tagged dictionary."""
        return {"type": self.event_type.value, **asdict(self)}


@dataclass
class ScanStarted(ProgressEvent):
    event_type: ClassVar[ProgressEventType] = ProgressEventType.SCAN_STARTED

    path: str


@dataclass
class ScanProgress(ProgressEvent):
    event_type: ClassVar[ProgressEventType] = ProgressEventType.SCAN_PROGRESS

    files_found: int
    files_processed: int
    current_file: str


@dataclass
class ScanComplete(ProgressEvent):
    event_type: ClassVar[ProgressEventType] = ProgressEventType.SCAN_COMPLETE

    total_files: int
    duration_ms: int


@dataclass
class DiffProgress(ProgressEvent):
    event_type: ClassVar[ProgressEventType] = ProgressEventType.DIFF_PROGRESS

    files_compared: int
    total_files: int
    current_file: str


@dataclass
class DiffComplete(ProgressEvent):
    event_type: ClassVar[ProgressEventType] = ProgressEventType.DIFF_COMPLETE

    total_entries: int


@dataclass
class SyncStarted(ProgressEvent):
    event_type: ClassVar[ProgressEventType] = ProgressEventType.SYNC_STARTED

    total_files: int
    total_bytes: int


@dataclass
class SyncProgress(ProgressEvent):
    event_type: ClassVar[ProgressEventType] = ProgressEventType.SYNC_PROGRESS

    files_completed: int
    total_files: int
    bytes_completed: int
    total_bytes: int
    current_file: str

    @property
    def percentage(self) -> float:
        """Calculate progress percentage by files."""
        if self.total_files == 0:
            return 0.0
        return (self.files_completed / self.total_files) * 100.0


@dataclass
class SyncComplete(ProgressEvent):
    event_type: ClassVar[ProgressEventType] = ProgressEventType.SYNC_COMPLETE

    files_synced: int
    duration_ms: int


@dataclass
class SyncErrorEvent(ProgressEvent):
    event_type: ClassVar[ProgressEventType] = ProgressEventType.SYNC_ERROR

    file: str
    error_message: str


# Type alias for progress callback function
ProgressCallback = Callable[[ProgressEvent], None]


class ProgressSink:
    """One-directional event stream written by the engine."""

    def emit(self, event: ProgressEvent) -> None:
        raise NotImplementedError


class NullSink(ProgressSink):
    """Sink that discards every event."""

    def emit(self, event: ProgressEvent) -> None:
        pass


class CallbackSink(ProgressSink):
    """Forwards events to a plain callable."""

    def __init__(self, callback: ProgressCallback) -> None:
        self.callback = callback

    def emit(self, event: ProgressEvent) -> None:
        self.callback(event)


class QueueSink(ProgressSink):
    """Hands events to another thread through a thread-safe queue.

    The worker running the sync emits; the UI thread drains with ``get``.
    """

    def __init__(self, event_queue: Optional["queue.Queue[ProgressEvent]"] = None):
        self.queue: "queue.Queue[ProgressEvent]" = event_queue or queue.Queue()

    def emit(self, event: ProgressEvent) -> None:
        self.queue.put(event)

    def get(self, timeout: Optional[float] = None) -> ProgressEvent:
        return self.queue.get(timeout=timeout)

    def drain(self) -> list:
        """Return every queued event without blocking."""
        events = []
        while True:
            try:
                events.append(self.queue.get_nowait())
            except queue.Empty:
                return events


class ProgressTracker:
    """Emits the events of one operation and times its phases.

    Listener failures are logged and never reach the engine.
    """

    def __init__(self, sink: Optional[ProgressSink] = None) -> None:
        """Initialize progress tracker.

        Args:
            sink: Listener for this operation (events are dropped if None)
        """
        self.sink = sink or NullSink()
        self._phase_start: Dict[str, float] = {}
        self._phase_history: Dict[str, float] = {}
        self.events_emitted = 0

    # Scan phase

    def scan_started(self, path: str) -> None:
        self._start_phase("scan")
        self._emit(ScanStarted(path=path))

    def scan_progress(
        self, files_found: int, files_processed: int, current_file: str
    ) -> None:
        self._emit(
            ScanProgress(
                files_found=files_found,
                files_processed=files_processed,
                current_file=current_file,
            )
        )

    def scan_complete(self, total_files: int) -> None:
        self._emit(
            ScanComplete(total_files=total_files, duration_ms=self._end_phase("scan"))
        )

    # Diff phase

    def diff_progress(
        self, files_compared: int, total_files: int, current_file: str
    ) -> None:
        self._emit(
            DiffProgress(
                files_compared=files_compared,
                total_files=total_files,
                current_file=current_file,
            )
        )

    def diff_complete(self, total_entries: int) -> None:
        self._emit(DiffComplete(total_entries=total_entries))

    # Sync phase

    def sync_started(self, total_files: int, total_bytes: int) -> None:
        self._start_phase("sync")
        self._emit(SyncStarted(total_files=total_files, total_bytes=total_bytes))

    def sync_progress(
        self,
        files_completed: int,
        total_files: int,
        bytes_completed: int,
        total_bytes: int,
        current_file: str,
    ) -> None:
        self._emit(
            SyncProgress(
                files_completed=files_completed,
                total_files=total_files,
                bytes_completed=bytes_completed,
                total_bytes=total_bytes,
                current_file=current_file,
            )
        )

    def sync_complete(self, files_synced: int) -> None:
        self._emit(
            SyncComplete(files_synced=files_synced, duration_ms=self._end_phase("sync"))
        )

    def sync_error(self, file: str, error_message: str) -> None:
        self._emit(SyncErrorEvent(file=file, error_message=error_message))

    def _start_phase(self, phase: str) -> None:
        self._phase_start[phase] = time.monotonic()

    def _end_phase(self, phase: str) -> int:
        started = self._phase_start.pop(phase, None)
        if started is None:
            return 0
        duration = time.monotonic() - started
        self._phase_history[phase] = duration
        return int(duration * 1000)

    def _emit(self, event: ProgressEvent) -> None:
        self.events_emitted += 1
        try:
            self.sink.emit(event)
        except Exception as e:
            logger.error("Error in progress listener: %s", e)

    def get_summary(self) -> Dict[str, Any]:
        """Get summary of progress tracking.

        Returns:
            Dictionary with phase durations in seconds
        """
        return {
            "events_emitted": self.events_emitted,
            "phase_history": dict(self._phase_history),
        }


class ConsoleProgressReporter(ProgressSink):
    """Simple console progress reporter."""

    def __init__(self, verbose: bool = False):
        """Initialize console reporter.

        Args:
            verbose: Whether to print per-file events
        """
        self.verbose = verbose

    def emit(self, event: ProgressEvent) -> None:
        if isinstance(event, (ScanProgress, DiffProgress, SyncProgress)):
            if self.verbose:
                print(f"  {event.event_type.value}: {event.current_file}")
            return
        if isinstance(event, SyncErrorEvent):
            print(f"  ERROR {event.file}: {event.error_message}")
            return
        print(f"[{event.event_type.value}] {event.to_dict()}")


class TqdmProgressReporter(ProgressSink):
    """Progress reporter using tqdm bars for the scan, diff and sync phases."""

    def __init__(self, disable: bool = False) -> None:
        self.disable = disable
        self._bars: Dict[str, Any] = {}

    def emit(self, event: ProgressEvent) -> None:
        if isinstance(event, ScanStarted):
            self._open("scan", desc=f"scan {event.path}", total=None, unit="file")
        elif isinstance(event, ScanProgress):
            self._advance("scan", event.files_processed, event.current_file)
        elif isinstance(event, ScanComplete):
            self._close("scan")
        elif isinstance(event, DiffProgress):
            if "diff" not in self._bars:
                self._open("diff", desc="compare", total=event.total_files, unit="file")
            self._advance("diff", event.files_compared, event.current_file)
        elif isinstance(event, DiffComplete):
            self._close("diff")
        elif isinstance(event, SyncStarted):
            self._open("sync", desc="sync", total=event.total_bytes, unit="B")
        elif isinstance(event, SyncProgress):
            self._advance("sync", event.bytes_completed, event.current_file)
        elif isinstance(event, SyncErrorEvent):
            tqdm.write(f"error: {event.file}: {event.error_message}")
        elif isinstance(event, SyncComplete):
            self._close("sync")

    def _open(self, phase: str, desc: str, total: Optional[int], unit: str) -> None:
        self._close(phase)
        self._bars[phase] = tqdm(
            total=total,
            desc=desc,
            unit=unit,
            unit_scale=unit == "B",
            disable=self.disable,
        )

    def _advance(self, phase: str, current: int, message: str) -> None:
        bar = self._bars.get(phase)
        if bar is None:
            return
        bar.n = current
        bar.set_postfix_str(message)
        bar.refresh()

    def _close(self, phase: str) -> None:
        bar = self._bars.pop(phase, None)
        if bar is not None:
            bar.close()

    def close_all(self) -> None:
        """Close all progress bars."""
        for phase in list(self._bars):
            self._close(phase)
