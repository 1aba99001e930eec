"""
minutesgen.progress - Progress events and the one-way reporter sink.

Long operations accept an optional ``on_progress`` callback and push
ProgressEvent objects into it. Percentages are advisory telemetry only:
completion is signalled by the operation returning or raising.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

logger = logging.getLogger(__name__)

LOG_LEVELS = ("info", "warning", "error", "success")

_log_ids = itertools.count(1)


@dataclass
class LogEntry:
    level: str
    message: str
    timestamp: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: f"{datetime.now():%Y%m%d%H%M%S%f}-{next(_log_ids)}")

    def __post_init__(self) -> None:
        if self.level not in LOG_LEVELS:
            raise ValueError(f"level must be one of: {LOG_LEVELS}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "level": self.level,
            "message": self.message,
        }


@dataclass
class ProcessingDetails:
    """Decoder-reported throughput figures, when available."""

    frames: int = 0
    current_fps: float = 0.0
    current_kbps: float = 0.0
    target_size: int = 0
    timemark: str = "0:00:00.00"

    def to_dict(self) -> dict[str, Any]:
        return {
            "frames": self.frames,
            "currentFps": self.current_fps,
            "currentKbps": self.current_kbps,
            "targetSize": self.target_size,
            "timemark": self.timemark,
        }


@dataclass
class ProgressEvent:
    stage: str
    percentage: float
    current_task: str
    estimated_time_remaining: float = 0
    logs: list[LogEntry] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    processing_details: ProcessingDetails | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape consumed by the UI process."""
        data: dict[str, Any] = {
            "stage": self.stage,
            "percentage": self.percentage,
            "currentTask": self.current_task,
            "estimatedTimeRemaining": self.estimated_time_remaining,
            "logs": [entry.to_dict() for entry in self.logs],
            "startedAt": self.started_at.isoformat(),
        }
        if self.processing_details is not None:
            data["processingDetails"] = self.processing_details.to_dict()
        return data


ProgressCallback = Callable[[ProgressEvent], None]


def make_event(
    stage: str,
    percentage: float,
    task: str,
    message: str | None = None,
    level: str = "info",
    eta: float = 0,
) -> ProgressEvent:
    """Build an event carrying a single log line."""
    logs = [LogEntry(level=level, message=message or task)]
    return ProgressEvent(
        stage=stage,
        percentage=percentage,
        current_task=task,
        estimated_time_remaining=eta,
        logs=logs,
    )


def notify(on_progress: ProgressCallback | None, event: ProgressEvent) -> None:
    """Invoke a progress callback without letting it break the caller."""
    if on_progress is None:
        return
    try:
        on_progress(event)
    except Exception as e:
        logger.warning(f"Progress callback error: {e}")


class ProgressReporter:
    """Bounded event sink drained by the UI layer.

    The buffer is the non-blocking path: emit never waits on ``drain``, and
    when the buffer is full the oldest event is dropped. Subscribers are
    called synchronously on the emitting thread, so they must return
    quickly and hand slow work off elsewhere; their failures are logged and
    ignored.
    """

    def __init__(self, maxlen: int = 256) -> None:
        self._events: deque[ProgressEvent] = deque(maxlen=maxlen)
        self._subscribers: list[ProgressCallback] = []
        self._lock = threading.Lock()
        self.dropped = 0

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """Register a subscriber. Returns a function that unsubscribes it.

        The callback runs inline on every emit and must not block.
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def emit(self, event: ProgressEvent) -> None:
        with self._lock:
            if len(self._events) == self._events.maxlen:
                self.dropped += 1
            self._events.append(event)
            subscribers = list(self._subscribers)

        logger.debug(f"progress {event.percentage:.0f}% {event.current_task}")
        for callback in subscribers:
            notify(callback, event)

    __call__ = emit

    def drain(self) -> list[ProgressEvent]:
        """Return buffered events in emission order and clear the buffer."""
        with self._lock:
            events = list(self._events)
            self._events.clear()
        return events

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
