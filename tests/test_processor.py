"""Tests for minutesgen.processor module."""

from __future__ import annotations

import base64
from pathlib import Path

import pytest

from minutesgen.config import MinutesGenConfig
from minutesgen.processor import NOT_INITIALIZED, NativeAudioProcessor


@pytest.fixture
def processor(config: MinutesGenConfig, fake_runner, fake_provisioner) -> NativeAudioProcessor:
    return NativeAudioProcessor(config, runner=fake_runner, provisioner=fake_provisioner)


@pytest.fixture
def ready(processor: NativeAudioProcessor) -> NativeAudioProcessor:
    assert processor.initialize()["success"]
    return processor


class TestInitialize:
    def test_success(self, processor: NativeAudioProcessor, config: MinutesGenConfig) -> None:
        events = []
        assert processor.initialize(on_progress=events.append) == {"success": True}
        assert processor.is_initialized
        assert config.temp_dir.is_dir()
        assert [e.percentage for e in events] == [5, 10]
        assert events[-1].logs[0].level == "success"

    def test_idempotent(self, processor: NativeAudioProcessor, fake_provisioner) -> None:
        processor.initialize()
        processor.initialize()
        assert fake_provisioner.calls == 1

    def test_failure(self, config: MinutesGenConfig, fake_runner, provisioner_factory) -> None:
        provisioner = provisioner_factory(config.bin_dir, error="ffmpeg binary not found")
        processor = NativeAudioProcessor(config, runner=fake_runner, provisioner=provisioner)
        events = []

        result = processor.initialize(on_progress=events.append)
        assert result["success"] is False
        assert "ffmpeg binary not found" in result["error"]
        assert not processor.is_initialized
        assert events[-1].stage == "error"

    def test_events_reach_reporter(self, processor: NativeAudioProcessor) -> None:
        processor.initialize()
        assert [e.percentage for e in processor.reporter.drain()] == [5, 10]


class TestProcessFile:
    def test_requires_initialize(self, processor: NativeAudioProcessor, media_file: Path) -> None:
        assert processor.process_file(media_file) == {"success": False, "error": NOT_INITIALIZED}

    def test_returns_segments(self, ready: NativeAudioProcessor, media_file: Path) -> None:
        result = ready.process_file(media_file)
        assert result["success"]
        assert [s["startTime"] for s in result["segments"]] == [0, 600, 1200]
        assert all(Path(s["filePath"]).is_file() for s in result["segments"])

    def test_custom_duration(self, ready: NativeAudioProcessor, media_file: Path) -> None:
        result = ready.process_file(media_file, segment_duration_seconds=500)
        assert len(result["segments"]) == 3
        assert result["segments"][-1]["duration"] == 500

    def test_failure_is_reported(
        self, config: MinutesGenConfig, runner_factory, fake_provisioner, media_file: Path
    ) -> None:
        runner = runner_factory(fail_at_start=1200)
        processor = NativeAudioProcessor(config, runner=runner, provisioner=fake_provisioner)
        processor.initialize()
        result = processor.process_file(media_file)
        assert result["success"] is False
        assert "Segment 2 extraction failed" in result["error"]

    def test_missing_input(self, ready: NativeAudioProcessor, tmp_path: Path) -> None:
        result = ready.process_file(tmp_path / "missing.mp3")
        assert result["success"] is False
        assert "not found" in result["error"]


class TestGetDuration:
    def test_requires_initialize(self, processor: NativeAudioProcessor) -> None:
        assert processor.get_duration(b"RIFF")["success"] is False

    def test_reads_duration(self, ready: NativeAudioProcessor, config: MinutesGenConfig) -> None:
        assert ready.get_duration(b"RIFF....") == {"success": True, "duration": 1500.0}
        assert not any(p.name.startswith("temp_audio_") for p in config.temp_dir.iterdir())


class TestFiles:
    def test_read_segment_file(self, processor: NativeAudioProcessor, tmp_path: Path) -> None:
        path = tmp_path / "segment_1_1.wav"
        path.write_bytes(b"RIFFdata")
        result = processor.read_segment_file(path)
        assert base64.b64decode(result["data"]) == b"RIFFdata"

    def test_read_missing_segment(self, processor: NativeAudioProcessor, tmp_path: Path) -> None:
        assert processor.read_segment_file(tmp_path / "nope.wav")["success"] is False

    def test_save_file_to_temp(self, processor: NativeAudioProcessor, config: MinutesGenConfig) -> None:
        result = processor.save_file_to_temp("team sync.m4a", b"abc")
        path = Path(result["tempPath"])
        assert result["fileSize"] == 3
        assert path.parent == config.temp_dir
        assert path.name.endswith("-team_sync.m4a")
        assert path.read_bytes() == b"abc"


class TestChunkedUpload:
    def test_round_trip(self, processor: NativeAudioProcessor) -> None:
        processor.coordinator.chunk_size = 4
        started = processor.start_chunked_upload("call.wav", 10)
        assert started["expectedChunks"] == 3
        session_id = started["sessionId"]

        for index, data in enumerate([b"abcd", b"efgh", b"ij"]):
            assert processor.upload_chunk(session_id, index, data) == {"success": True}
        final = processor.finalize_chunked_upload(session_id)

        assert final["success"]
        assert final["fileSize"] == 10
        assert Path(final["tempPath"]).read_bytes() == b"abcdefghij"
        assert isinstance(final["processingTime"], int)

    def test_mismatch_reported(self, processor: NativeAudioProcessor) -> None:
        processor.coordinator.chunk_size = 4
        session_id = processor.start_chunked_upload("call.wav", 10)["sessionId"]
        processor.upload_chunk(session_id, 0, b"abcd")
        result = processor.finalize_chunked_upload(session_id)
        assert result == {"success": False, "error": "Chunk count mismatch: 1/3"}

    def test_unknown_session(self, processor: NativeAudioProcessor) -> None:
        result = processor.upload_chunk("session-unknown", 0, b"x")
        assert result["success"] is False
        assert "Session not found" in result["error"]

    def test_cleanup_always_succeeds(self, processor: NativeAudioProcessor) -> None:
        assert processor.cleanup_chunked_upload("session-unknown") == {"success": True}


class TestMalformedArguments:
    """Commands report bad arguments as failures instead of raising."""

    def test_upload_non_integer_index(self, processor: NativeAudioProcessor) -> None:
        session_id = processor.start_chunked_upload("a.bin", 10)["sessionId"]
        result = processor.upload_chunk(session_id, "0", b"x")
        assert result["success"] is False
        assert "index must be an integer" in result["error"]

    def test_upload_bool_index(self, processor: NativeAudioProcessor) -> None:
        session_id = processor.start_chunked_upload("a.bin", 10)["sessionId"]
        assert processor.upload_chunk(session_id, True, b"x")["success"] is False

    def test_upload_missing_data(self, processor: NativeAudioProcessor) -> None:
        session_id = processor.start_chunked_upload("a.bin", 10)["sessionId"]
        result = processor.upload_chunk(session_id, 0, None)
        assert result["success"] is False
        assert "must be bytes" in result["error"]
        assert processor.coordinator.get_session(session_id).chunks == {}

    def test_upload_accepts_bytearray(self, processor: NativeAudioProcessor) -> None:
        session_id = processor.start_chunked_upload("a.bin", 3)["sessionId"]
        assert processor.upload_chunk(session_id, 0, bytearray(b"abc"))["success"]
        assert processor.finalize_chunked_upload(session_id)["fileSize"] == 3

    def test_upload_non_string_session(self, processor: NativeAudioProcessor) -> None:
        result = processor.upload_chunk(["session"], 0, b"x")
        assert result["success"] is False
        assert "Session not found" in result["error"]

    def test_start_without_size(self, processor: NativeAudioProcessor) -> None:
        result = processor.start_chunked_upload("a.bin", None)
        assert result["success"] is False
        assert "file_size must be an integer" in result["error"]

    def test_start_with_float_size(self, processor: NativeAudioProcessor) -> None:
        assert processor.start_chunked_upload("a.bin", 10.5)["success"] is False

    def test_start_without_name(self, processor: NativeAudioProcessor) -> None:
        assert processor.start_chunked_upload(None, 10)["success"] is False

    def test_finalize_non_string_session(self, processor: NativeAudioProcessor) -> None:
        assert processor.finalize_chunked_upload(None)["success"] is False

    def test_cleanup_unhashable_session(self, processor: NativeAudioProcessor) -> None:
        assert processor.cleanup_chunked_upload({"id": 1}) == {"success": True}

    def test_get_duration_without_bytes(self, ready: NativeAudioProcessor) -> None:
        result = ready.get_duration(None)
        assert result["success"] is False
        assert "must be bytes" in result["error"]

    def test_get_duration_from_string(self, ready: NativeAudioProcessor) -> None:
        assert ready.get_duration("RIFF")["success"] is False

    def test_process_file_without_path(self, ready: NativeAudioProcessor) -> None:
        assert ready.process_file(None)["success"] is False

    def test_process_file_bad_duration(self, ready: NativeAudioProcessor, media_file: Path) -> None:
        assert ready.process_file(media_file, segment_duration_seconds="long")["success"] is False

    def test_read_segment_without_path(self, processor: NativeAudioProcessor) -> None:
        assert processor.read_segment_file(None)["success"] is False

    def test_save_file_without_data(self, processor: NativeAudioProcessor, config: MinutesGenConfig) -> None:
        result = processor.save_file_to_temp("a.wav", None)
        assert result["success"] is False
        assert not config.temp_dir.exists() or list(config.temp_dir.iterdir()) == []

    def test_save_file_without_name(self, processor: NativeAudioProcessor) -> None:
        assert processor.save_file_to_temp(None, b"abc")["success"] is False


class TestCleanup:
    def test_removes_temp_root(self, ready: NativeAudioProcessor, config: MinutesGenConfig, media_file: Path) -> None:
        ready.process_file(media_file)
        ready.start_chunked_upload("a.wav", 10)
        ready.cleanup()
        assert not config.temp_dir.exists()
        assert not ready.is_initialized
