"""
Test configuration and shared fixtures.
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import pytest

from minutesgen.binaries.provisioner import arch_candidates, platform_key
from minutesgen.binaries.runner import RunResult
from minutesgen.config import MinutesGenConfig
from minutesgen.exceptions import BinaryUnverifiedError, ProvisioningError

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses POSIX shell scripts")


def make_script(path: Path, body: str) -> Path:
    """Write an executable /bin/sh script."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"#!/bin/sh\n{body}\n")
    os.chmod(path, 0o755)
    return path


class FakeRunner:
    """Stands in for ProcessRunner: answers ffprobe with JSON, fakes ffmpeg output files."""

    def __init__(
        self,
        duration: float | None = 1500.0,
        probe_output: str | None = None,
        probe_returncode: int = 0,
        probe_raises: bool = False,
        fail_at_start: float | None = None,
    ) -> None:
        self.duration = duration
        self.probe_output = probe_output
        self.probe_returncode = probe_returncode
        self.probe_raises = probe_raises
        self.fail_at_start = fail_at_start
        self.calls: list[tuple[Path, list[str]]] = []

    def run(self, path, args, timeout=10.0, accept=None) -> RunResult:
        path = Path(path)
        args = list(args)
        self.calls.append((path, args))

        if path.name.startswith("ffprobe"):
            if self.probe_raises:
                raise BinaryUnverifiedError(str(path), "All execution strategies failed")
            if self.probe_output is not None:
                stdout = self.probe_output
            else:
                fmt = {"format_name": "wav"}
                if self.duration is not None:
                    fmt["duration"] = str(self.duration)
                stdout = json.dumps(
                    {
                        "format": fmt,
                        "streams": [{"codec_type": "audio", "sample_rate": "44100"}],
                    }
                )
            stderr = "" if self.probe_returncode == 0 else "Invalid data found"
            return RunResult(stdout, stderr, self.probe_returncode)

        start = float(args[args.index("-ss") + 1])
        if self.fail_at_start is not None and abs(start - self.fail_at_start) < 1e-6:
            return RunResult("", "Conversion failed!", 1)
        Path(args[-1]).write_bytes(b"RIFF\x00\x00\x00\x00WAVEfmt ")
        return RunResult("", "", 0)

    @property
    def decode_calls(self) -> list[list[str]]:
        return [args for path, args in self.calls if path.name.startswith("ffmpeg")]


class FakeProvisioner:
    def __init__(self, bin_dir: Path, error: str | None = None) -> None:
        self.decoder_path = bin_dir / "ffmpeg"
        self.prober_path = bin_dir / "ffprobe"
        self.error = error
        self.calls = 0

    def ensure_provisioned(self):
        self.calls += 1
        if self.error:
            raise ProvisioningError(self.error)


@pytest.fixture
def config(tmp_path: Path) -> MinutesGenConfig:
    """Config with every directory inside tmp_path and no PATH lookup."""
    return MinutesGenConfig(
        bin_dir=tmp_path / "home" / ".minutesgen" / "bin",
        safe_exec_dir=tmp_path / "home" / ".minutesgen" / "exec",
        temp_dir=tmp_path / "tmp" / "minutes-gen-audio",
        resources_dir=tmp_path / "vendor",
        search_system_path=False,
    )


@pytest.fixture
def fake_vendor(tmp_path: Path) -> Path:
    """Development-style vendor tree with working fake ffmpeg/ffprobe."""
    vendor = tmp_path / "vendor"
    make_script(vendor / "ffmpeg" / "ffmpeg", 'echo "ffmpeg version 6.1-test"')
    make_script(
        vendor / "ffprobe" / "bin" / platform_key() / arch_candidates()[0] / "ffprobe",
        'echo "ffprobe version 6.1-test"',
    )
    return vendor


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def runner_factory():
    return FakeRunner


@pytest.fixture
def fake_provisioner(config: MinutesGenConfig) -> FakeProvisioner:
    return FakeProvisioner(config.bin_dir)


@pytest.fixture
def provisioner_factory():
    return FakeProvisioner


@pytest.fixture
def media_file(tmp_path: Path) -> Path:
    path = tmp_path / "meeting.m4a"
    path.write_bytes(b"\x00" * 256)
    return path
