"""
minutesgen.audio.probe - FFprobe metadata extraction.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from minutesgen.binaries.runner import ProcessRunner
from minutesgen.exceptions import BinaryUnverifiedError, ProbeError
from minutesgen.io import write_bytes
from minutesgen.utils import BYTES_LIKE

logger = logging.getLogger(__name__)


@dataclass
class ProbeResult:
    duration_seconds: float
    format_metadata: dict[str, Any] = field(default_factory=dict)
    streams: list[dict[str, Any]] = field(default_factory=list)

    @property
    def audio_stream(self) -> dict[str, Any] | None:
        return next((s for s in self.streams if s.get("codec_type") == "audio"), None)

    @property
    def sample_rate(self) -> int | None:
        stream = self.audio_stream
        if stream and stream.get("sample_rate"):
            return int(stream["sample_rate"])
        return None


def parse_duration(format_info: dict[str, Any]) -> float:
    """Read format.duration, defaulting to 0 when absent or unparseable."""
    raw = format_info.get("duration")
    if raw in (None, "", "N/A"):
        return 0.0
    try:
        duration = float(raw)
    except (TypeError, ValueError):
        return 0.0
    return duration if duration > 0 else 0.0


class AudioProbe:
    """Wraps the prober binary."""

    def __init__(self, prober_path: Path, runner: ProcessRunner, timeout: float = 30.0) -> None:
        self.prober_path = Path(prober_path)
        self.runner = runner
        self.timeout = timeout

    def probe(self, path: Path) -> ProbeResult:
        """Probe a media file for duration and format metadata.

        A file without duration metadata yields duration 0, not an error.

        Raises:
            ProbeError: If the input is missing or the prober fails to run
        """
        path = Path(path)
        if not path.is_file():
            raise ProbeError(f"Input file not found: {path}")

        cmd = [
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_format",
            "-show_streams",
            str(path),
        ]
        try:
            result = self.runner.run(self.prober_path, cmd, timeout=self.timeout)
        except BinaryUnverifiedError as e:
            raise ProbeError(f"ffprobe could not be executed for {path.name}: {e}") from e

        if result.returncode != 0:
            raise ProbeError(
                f"ffprobe failed for {path.name} (exit code {result.returncode}): "
                f"{result.stderr.strip()}"
            )

        try:
            data = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise ProbeError(f"ffprobe returned unreadable output for {path.name}: {e}") from e

        format_info = data.get("format", {}) or {}
        duration = parse_duration(format_info)
        if duration == 0:
            logger.warning(f"{path.name}: no duration metadata, assuming 0")

        return ProbeResult(
            duration_seconds=duration,
            format_metadata=format_info,
            streams=data.get("streams", []) or [],
        )

    def duration_of_bytes(self, data: bytes, temp_dir: Path) -> float:
        """Probe in-memory audio by staging it in a temp file.

        The temp file is removed on both success and failure.
        """
        if not isinstance(data, BYTES_LIKE):
            raise ValueError(f"audio data must be bytes, got {type(data).__name__}")
        temp_path = Path(temp_dir) / f"temp_audio_{uuid.uuid4().hex}"
        try:
            write_bytes(temp_path, data)
        except OSError as e:
            raise ProbeError(f"Could not stage audio for probing: {e}") from e
        try:
            return self.probe(temp_path).duration_seconds
        finally:
            try:
                temp_path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not remove {temp_path}: {e}")
