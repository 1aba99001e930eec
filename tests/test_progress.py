"""Tests for minutesgen.progress module."""

from __future__ import annotations

import threading

import pytest

from minutesgen.progress import (
    LogEntry,
    ProcessingDetails,
    ProgressReporter,
    make_event,
    notify,
)


class TestLogEntry:
    def test_rejects_unknown_level(self) -> None:
        with pytest.raises(ValueError):
            LogEntry(level="debug", message="x")

    def test_ids_are_unique(self) -> None:
        assert LogEntry("info", "a").id != LogEntry("info", "b").id


class TestProgressEvent:
    def test_wire_shape(self) -> None:
        event = make_event("transcribing", 30, "Splitting...", "Splitting into 3 segments.", eta=6)
        data = event.to_dict()
        assert data["stage"] == "transcribing"
        assert data["percentage"] == 30
        assert data["currentTask"] == "Splitting..."
        assert data["estimatedTimeRemaining"] == 6
        assert data["logs"][0]["message"] == "Splitting into 3 segments."
        assert data["logs"][0]["level"] == "info"
        assert "startedAt" in data
        assert "processingDetails" not in data

    def test_log_message_defaults_to_task(self) -> None:
        assert make_event("transcribing", 5, "Preparing").logs[0].message == "Preparing"

    def test_processing_details(self) -> None:
        event = make_event("transcribing", 50, "Decoding")
        event.processing_details = ProcessingDetails(frames=10, current_kbps=705.6)
        details = event.to_dict()["processingDetails"]
        assert details["frames"] == 10
        assert details["currentKbps"] == 705.6


class TestNotify:
    def test_none_callback(self) -> None:
        notify(None, make_event("transcribing", 1, "x"))

    def test_swallows_callback_errors(self) -> None:
        def broken(event):
            raise RuntimeError("closed")

        notify(broken, make_event("transcribing", 1, "x"))


class TestProgressReporter:
    def test_buffers_in_order(self) -> None:
        reporter = ProgressReporter()
        for pct in (10, 20, 30):
            reporter.emit(make_event("transcribing", pct, "step"))
        assert [e.percentage for e in reporter.drain()] == [10, 20, 30]
        assert len(reporter) == 0

    def test_drops_oldest_when_full(self) -> None:
        reporter = ProgressReporter(maxlen=2)
        for pct in (10, 20, 30):
            reporter(make_event("transcribing", pct, "step"))
        assert [e.percentage for e in reporter.drain()] == [20, 30]
        assert reporter.dropped == 1

    def test_subscribers(self) -> None:
        reporter = ProgressReporter()
        seen = []
        unsubscribe = reporter.subscribe(seen.append)
        reporter.emit(make_event("transcribing", 10, "a"))
        unsubscribe()
        reporter.emit(make_event("transcribing", 20, "b"))
        assert [e.percentage for e in seen] == [10]

    def test_failing_subscriber_does_not_block_others(self) -> None:
        reporter = ProgressReporter()
        seen = []

        def broken(event):
            raise RuntimeError("gone")

        reporter.subscribe(broken)
        reporter.subscribe(seen.append)
        reporter.emit(make_event("transcribing", 10, "a"))
        assert len(seen) == 1
        assert len(reporter) == 1

    def test_emit_never_waits_for_a_drainer(self) -> None:
        reporter = ProgressReporter(maxlen=4)
        for pct in range(1000):
            reporter.emit(make_event("transcribing", pct % 100, "step"))
        assert len(reporter) == 4
        assert reporter.dropped == 996

    def test_subscriber_may_drain_inline(self) -> None:
        reporter = ProgressReporter()
        drained = []
        reporter.subscribe(lambda event: drained.extend(reporter.drain()))

        reporter.emit(make_event("transcribing", 10, "a"))
        reporter.emit(make_event("transcribing", 20, "b"))

        assert [e.percentage for e in drained] == [10, 20]
        assert len(reporter) == 0

    def test_drain_from_another_thread(self) -> None:
        reporter = ProgressReporter(maxlen=64)
        collected = []
        done = threading.Event()

        def consumer() -> None:
            while not done.is_set() or len(reporter):
                collected.extend(reporter.drain())

        thread = threading.Thread(target=consumer)
        thread.start()
        for pct in range(50):
            reporter.emit(make_event("transcribing", pct, "step"))
        done.set()
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert [e.percentage for e in collected] == list(range(50))
