"""
minutesgen.processor - Command facade for the UI/runtime layer.

NativeAudioProcessor wires the provisioner, runner, probe, segmenter and
chunk coordinator together and exposes the commands the UI process
calls. Every command returns a plain dict with a ``success`` flag and a
human-readable ``error`` string on failure; nothing raises through.
"""

from __future__ import annotations

import base64
import logging
from pathlib import Path
from typing import Any

from minutesgen.audio.probe import AudioProbe
from minutesgen.audio.segmenter import Segmenter
from minutesgen.binaries.provisioner import BinaryProvisioner
from minutesgen.binaries.runner import ProcessRunner
from minutesgen.config import MinutesGenConfig
from minutesgen.exceptions import MinutesGenError
from minutesgen.io import remove_tree, write_bytes
from minutesgen.progress import ProgressCallback, ProgressReporter, make_event, notify
from minutesgen.transfer.chunked import ChunkedTransferCoordinator
from minutesgen.utils import BYTES_LIKE, now_ms, sanitize_filename

logger = logging.getLogger(__name__)

NOT_INITIALIZED = "Audio processing system is not initialized"


def _failure(error: Exception | str, **extra: Any) -> dict[str, Any]:
    return {"success": False, "error": str(error), **extra}


class NativeAudioProcessor:
    """One audio pipeline: provisioning, splitting and chunked intake."""

    def __init__(
        self,
        config: MinutesGenConfig | None = None,
        runner: ProcessRunner | None = None,
        provisioner: BinaryProvisioner | None = None,
        coordinator: ChunkedTransferCoordinator | None = None,
        reporter: ProgressReporter | None = None,
    ) -> None:
        self.config = config or MinutesGenConfig()
        self.temp_dir = Path(self.config.temp_dir)
        self.runner = runner or ProcessRunner(safe_dir=self.config.safe_exec_dir)
        self.provisioner = provisioner or BinaryProvisioner(self.config, self.runner)
        self.coordinator = coordinator or ChunkedTransferCoordinator(
            self.temp_dir, chunk_size=self.config.chunk_size_bytes
        )
        self.reporter = reporter or ProgressReporter(maxlen=self.config.progress_buffer_size)
        self.is_initialized = False
        self._probe: AudioProbe | None = None
        self._segmenter: Segmenter | None = None

    @property
    def probe(self) -> AudioProbe:
        if self._probe is None:
            self._probe = AudioProbe(
                self.provisioner.prober_path, self.runner, timeout=self.config.probe_timeout
            )
        return self._probe

    @property
    def segmenter(self) -> Segmenter:
        if self._segmenter is None:
            self._segmenter = Segmenter(
                self.provisioner.decoder_path,
                self.runner,
                self.probe,
                self.temp_dir,
                sample_rate=self.config.sample_rate,
                channels=self.config.channels,
                timeout=self.config.decode_timeout,
                max_workers=self.config.max_workers,
            )
        return self._segmenter

    def _progress(self, on_progress: ProgressCallback | None):
        if on_progress is None:
            return self.reporter.emit

        def fan_out(event):
            self.reporter.emit(event)
            notify(on_progress, event)

        return fan_out

    def initialize(self, on_progress: ProgressCallback | None = None) -> dict[str, Any]:
        """Create the temp root and provision the binaries. Idempotent."""
        if self.is_initialized:
            return {"success": True}

        emit = self._progress(on_progress)
        emit(make_event("transcribing", 5, "Preparing audio processing system..."))
        try:
            self.temp_dir.mkdir(parents=True, exist_ok=True)
            self.provisioner.ensure_provisioned()
        except (MinutesGenError, OSError) as e:
            logger.error(f"Initialization failed: {e}")
            emit(
                make_event(
                    "error",
                    0,
                    "Audio processing system failed to initialize",
                    f"Initialization failed: {e}",
                    level="error",
                )
            )
            return _failure(f"Audio processing system initialization failed: {e}")

        self.is_initialized = True
        emit(
            make_event(
                "transcribing",
                10,
                "Audio processing system ready",
                "Audio processing system initialized.",
                level="success",
            )
        )
        return {"success": True}

    def process_file(
        self,
        path: str | Path,
        segment_duration_seconds: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> dict[str, Any]:
        """Split a local media file into WAV segments."""
        if not self.is_initialized:
            return _failure(NOT_INITIALIZED)
        if segment_duration_seconds is None:
            segment_duration_seconds = self.config.segment_duration_seconds

        try:
            segments = self.segmenter.split(
                Path(path), segment_duration_seconds, on_progress=self._progress(on_progress)
            )
        except (MinutesGenError, OSError, ValueError, TypeError) as e:
            return _failure(e)

        logger.info(f"Processed {path}: {len(segments)} segments")
        return {"success": True, "segments": [s.to_dict() for s in segments]}

    def get_duration(self, audio_bytes: bytes) -> dict[str, Any]:
        """Probe in-memory audio for its duration in seconds."""
        if not self.is_initialized:
            return _failure(NOT_INITIALIZED)
        try:
            duration = self.probe.duration_of_bytes(audio_bytes, self.temp_dir)
        except (MinutesGenError, ValueError) as e:
            return _failure(e)
        return {"success": True, "duration": duration}

    def read_segment_file(self, path: str | Path) -> dict[str, Any]:
        """Return a segment file's bytes base64-encoded."""
        if not isinstance(path, (str, Path)):
            return _failure(f"Segment path must be a string, got {type(path).__name__}")
        path = Path(path)
        if not path.is_file():
            return _failure(f"Segment file not found: {path}")
        try:
            data = path.read_bytes()
        except OSError as e:
            return _failure(e)
        return {"success": True, "data": base64.b64encode(data).decode("ascii")}

    def save_file_to_temp(self, file_name: str, data: bytes) -> dict[str, Any]:
        """Write a small file into the temp root under a unique name."""
        if not isinstance(file_name, str) or not file_name:
            return _failure("file_name must be a non-empty string")
        if not isinstance(data, BYTES_LIKE):
            return _failure(f"data must be bytes, got {type(data).__name__}")
        temp_path = self.temp_dir / f"{now_ms()}-{sanitize_filename(file_name)}"
        try:
            write_bytes(temp_path, data)
            size = temp_path.stat().st_size
        except OSError as e:
            temp_path.unlink(missing_ok=True)
            return _failure(e)
        return {"success": True, "tempPath": str(temp_path), "fileSize": size}

    def start_chunked_upload(self, file_name: str, file_size: int) -> dict[str, Any]:
        try:
            session_id = self.coordinator.start_session(file_name, file_size)
        except (MinutesGenError, ValueError) as e:
            return _failure(e)
        session = self.coordinator.get_session(session_id)
        return {
            "success": True,
            "sessionId": session_id,
            "expectedChunks": session.expected_chunks,
        }

    def upload_chunk(self, session_id: str, index: int, data: bytes) -> dict[str, Any]:
        try:
            self.coordinator.upload_chunk(session_id, index, data)
        except (MinutesGenError, ValueError) as e:
            return _failure(e)
        return {"success": True}

    def finalize_chunked_upload(self, session_id: str) -> dict[str, Any]:
        try:
            result = self.coordinator.finalize_session(session_id)
        except MinutesGenError as e:
            return _failure(e)
        return {
            "success": True,
            "tempPath": str(result.final_path),
            "fileSize": result.file_size,
            "processingTime": result.processing_time_ms,
        }

    def cleanup_chunked_upload(self, session_id: str) -> dict[str, Any]:
        self.coordinator.cleanup_session(session_id)
        return {"success": True}

    def cleanup(self) -> None:
        """Remove every temp artifact. Errors are logged, never raised."""
        try:
            self.coordinator.cleanup_all()
            if self.temp_dir.exists() and not remove_tree(self.temp_dir):
                logger.warning(f"Could not fully remove {self.temp_dir}")
        except Exception as e:
            logger.warning(f"Cleanup error: {e}")
        self.is_initialized = False
