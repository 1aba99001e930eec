"""
minutesgen.audio.segmenter - Time-window splitting with FFmpeg.

Cuts a long recording into contiguous, non-overlapping windows of at
most ``segment_duration_seconds`` and decodes each into a standalone
mono 16-bit PCM WAV file. Extraction is sequential by default, keeping
one decoder process in flight; a worker pool can be enabled since the
segments share no mutable state.
"""

from __future__ import annotations

import logging
import math
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from minutesgen.audio.probe import AudioProbe
from minutesgen.binaries.runner import ProcessRunner
from minutesgen.exceptions import BinaryUnverifiedError, SegmentExtractionError
from minutesgen.progress import ProgressCallback, make_event, notify
from minutesgen.utils import now_ms

logger = logging.getLogger(__name__)

STAGE = "transcribing"


@dataclass(frozen=True)
class Window:
    index: int
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass
class Segment:
    index: int
    start_time: float
    end_time: float
    duration: float
    file_path: Path

    @property
    def name(self) -> str:
        return self.file_path.name

    def to_dict(self) -> dict[str, Any]:
        """Wire shape handed to the UI process."""
        return {
            "filePath": str(self.file_path),
            "name": self.name,
            "duration": self.duration,
            "startTime": self.start_time,
            "endTime": self.end_time,
        }


def compute_windows(total_duration: float, segment_duration: float) -> list[Window]:
    """Split [0, total_duration) into windows of at most segment_duration.

    Zero-length trailing windows are skipped.

    Raises:
        ValueError: If segment_duration is not positive
    """
    if segment_duration <= 0:
        raise ValueError("segment_duration must be positive")
    if total_duration <= 0:
        return []

    count = math.ceil(total_duration / segment_duration)
    windows = []
    for i in range(count):
        start = i * segment_duration
        end = min((i + 1) * segment_duration, total_duration)
        if end - start <= 0:
            logger.warning(f"Window {i + 1} has no duration, skipping")
            continue
        windows.append(Window(index=i, start=start, end=end))
    return windows


def build_extract_args(
    input_path: Path,
    output_path: Path,
    start: float,
    duration: float,
    sample_rate: int = 44100,
    channels: int = 1,
) -> list[str]:
    """FFmpeg arguments that cut one window into a PCM WAV file."""
    return [
        "-y",
        "-hide_banner",
        "-loglevel",
        "error",
        "-ss",
        f"{start:.3f}",
        "-i",
        str(input_path),
        "-t",
        f"{duration:.3f}",
        "-vn",
        "-acodec",
        "pcm_s16le",
        "-ar",
        str(sample_rate),
        "-ac",
        str(channels),
        "-f",
        "wav",
        str(output_path),
    ]


class Segmenter:
    """Splits media files into transcription-sized WAV segments."""

    def __init__(
        self,
        decoder_path: Path,
        runner: ProcessRunner,
        probe: AudioProbe,
        output_dir: Path,
        sample_rate: int = 44100,
        channels: int = 1,
        timeout: float = 600.0,
        max_workers: int = 1,
    ) -> None:
        self.decoder_path = Path(decoder_path)
        self.runner = runner
        self.probe = probe
        self.output_dir = Path(output_dir)
        self.sample_rate = sample_rate
        self.channels = channels
        self.timeout = timeout
        self.max_workers = max(1, max_workers)
        self._name_lock = threading.Lock()

    def split(
        self,
        input_path: Path,
        segment_duration_seconds: float = 600,
        on_progress: ProgressCallback | None = None,
    ) -> list[Segment]:
        """Probe the input and decode every window into its own file.

        Returns:
            Segments ordered by start time

        Raises:
            ValueError: If segment_duration_seconds is not positive
            ProbeError: If the input cannot be probed
            SegmentExtractionError: If any window fails to decode
        """
        if segment_duration_seconds <= 0:
            raise ValueError("segment_duration_seconds must be positive")
        input_path = Path(input_path)

        try:
            notify(on_progress, make_event(STAGE, 20, "Analyzing audio file..."))
            total_duration = self.probe.probe(input_path).duration_seconds
            windows = compute_windows(total_duration, segment_duration_seconds)
            count = len(windows)
            notify(
                on_progress,
                make_event(
                    STAGE,
                    30,
                    f"Splitting into {count} segments...",
                    f"Splitting {input_path.name} ({total_duration:.1f}s) into {count} segments.",
                ),
            )

            self.output_dir.mkdir(parents=True, exist_ok=True)
            if self.max_workers > 1 and count > 1:
                segments = self._split_parallel(input_path, windows, on_progress)
            else:
                segments = self._split_sequential(input_path, windows, on_progress)

            notify(
                on_progress,
                make_event(
                    STAGE,
                    70,
                    "Audio split complete",
                    f"Split audio into {len(segments)} segments.",
                    level="success",
                ),
            )
            return segments
        except Exception as e:
            logger.error(f"Splitting {input_path} failed: {e}")
            notify(
                on_progress,
                make_event(STAGE, 0, "Audio processing error", f"Audio processing failed: {e}", "error"),
            )
            raise

    def _split_sequential(self, input_path, windows, on_progress) -> list[Segment]:
        segments: list[Segment] = []
        count = len(windows)
        try:
            for position, window in enumerate(windows):
                self._report_window(on_progress, position, count)
                segments.append(self.extract(input_path, window))
        except Exception:
            self._discard(segments)
            raise
        return segments

    def _split_parallel(self, input_path, windows, on_progress) -> list[Segment]:
        count = len(windows)
        completed = 0
        progress_lock = threading.Lock()

        def on_done(future) -> None:
            nonlocal completed
            if future.cancelled() or future.exception() is not None:
                return
            with progress_lock:
                self._report_window(on_progress, completed, count)
                completed += 1

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = []
            for window in windows:
                future = pool.submit(self.extract, input_path, window)
                future.add_done_callback(on_done)
                futures.append(future)

            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            for future in pending:
                future.cancel()

        finished = [f.result() for f in futures if f.done() and not f.cancelled() and f.exception() is None]
        failures = [f.exception() for f in futures if f.done() and not f.cancelled() and f.exception()]
        if failures:
            self._discard(finished)
            raise min(failures, key=lambda e: getattr(e, "index", 0))
        return sorted(finished, key=lambda s: s.start_time)

    def extract(self, input_path: Path, window: Window) -> Segment:
        """Decode a single window to a new WAV file.

        Raises:
            SegmentExtractionError: If the decoder cannot run or exits non-zero
        """
        output_path = self._segment_path(window.index)
        args = build_extract_args(
            input_path,
            output_path,
            window.start,
            window.duration,
            sample_rate=self.sample_rate,
            channels=self.channels,
        )
        try:
            result = self.runner.run(self.decoder_path, args, timeout=self.timeout)
        except BinaryUnverifiedError as e:
            output_path.unlink(missing_ok=True)
            raise SegmentExtractionError(window.index, str(e)) from e

        if result.returncode != 0 or not output_path.exists() or output_path.stat().st_size == 0:
            output_path.unlink(missing_ok=True)
            detail = result.stderr.strip() or f"exit code {result.returncode}"
            raise SegmentExtractionError(window.index, detail)

        logger.debug(f"Segment {window.index + 1}: {window.start:.1f}-{window.end:.1f}s -> {output_path.name}")
        return Segment(
            index=window.index,
            start_time=window.start,
            end_time=window.end,
            duration=window.duration,
            file_path=output_path,
        )

    def _segment_path(self, index: int) -> Path:
        with self._name_lock:
            stamp = now_ms()
            path = self.output_dir / f"segment_{index + 1}_{stamp}.wav"
            while path.exists():
                stamp += 1
                path = self.output_dir / f"segment_{index + 1}_{stamp}.wav"
            path.touch()
        return path

    def _report_window(self, on_progress, position: int, count: int) -> None:
        notify(
            on_progress,
            make_event(
                STAGE,
                30 + (position / count) * 40,
                f"Splitting large file... {position + 1}/{count}",
                f"Generating segment {position + 1}/{count}...",
                eta=(count - position) * 2,
            ),
        )

    @staticmethod
    def _discard(segments: list[Segment]) -> None:
        for segment in segments:
            try:
                segment.file_path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not remove {segment.file_path}: {e}")
