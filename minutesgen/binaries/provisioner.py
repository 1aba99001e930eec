"""
minutesgen.binaries.provisioner - Fixed-location deployment of FFmpeg/FFprobe.

Resolves the bundled source binaries for the current packaging mode,
copies them into the per-user bin directory when they are missing or
differ in size, marks them executable on POSIX, and verifies that they
actually run.
"""

from __future__ import annotations

import enum
import logging
import os
import platform
import shutil
import sys
import threading
from dataclasses import dataclass
from pathlib import Path

from minutesgen.binaries.runner import IS_WINDOWS, ProcessRunner
from minutesgen.config import MinutesGenConfig
from minutesgen.exceptions import BinaryUnverifiedError, ProvisioningError
from minutesgen.utils import format_bytes

logger = logging.getLogger(__name__)

DECODER = "ffmpeg"
PROBER = "ffprobe"

# Development checkout: <repo>/vendor/{ffmpeg,ffprobe}/...
DEV_ROOT = Path(__file__).resolve().parents[2] / "vendor"


class ProvisioningState(str, enum.Enum):
    NOT_PROVISIONED = "not_provisioned"
    PROVISIONED = "provisioned"
    VERIFIED = "verified"


@dataclass(frozen=True)
class BinaryLocation:
    decoder_path: Path
    prober_path: Path
    state: ProvisioningState = ProvisioningState.NOT_PROVISIONED


def exe_name(name: str) -> str:
    return f"{name}.exe" if IS_WINDOWS else name


def platform_key() -> str:
    if IS_WINDOWS:
        return "win32"
    if sys.platform == "darwin":
        return "darwin"
    return "linux"


def arch_candidates() -> list[str]:
    """Architecture sub-directories to try, preferred first."""
    machine = platform.machine().lower()
    if IS_WINDOWS:
        return ["x64", "ia32"] if machine in ("amd64", "x86_64") else ["ia32", "x64"]
    if machine in ("arm64", "aarch64"):
        return ["arm64", "x64"]
    return ["x64", "arm64"]


def is_packaged() -> bool:
    """True when running from a frozen (bundled) distribution."""
    return bool(getattr(sys, "frozen", False))


def resources_root(config: MinutesGenConfig) -> Path:
    if config.resources_dir is not None:
        return Path(config.resources_dir)
    if is_packaged():
        bundle = getattr(sys, "_MEIPASS", None)
        base = Path(bundle) if bundle else Path(sys.executable).parent
        return base / "vendor"
    return DEV_ROOT


def source_candidates(name: str, config: MinutesGenConfig) -> list[Path]:
    """Ordered source paths for one binary.

    The decoder sits directly under its package directory; the prober is
    nested under bin/<platform>/<arch>/.
    """
    root = resources_root(config)
    filename = exe_name(name)
    candidates: list[Path] = []

    if name == DECODER:
        candidates.append(root / DECODER / filename)
        if IS_WINDOWS:
            candidates.append(root / DECODER / DECODER)
    else:
        for arch in arch_candidates():
            candidates.append(root / PROBER / "bin" / platform_key() / arch / filename)

    for extra in config.extra_search_dirs:
        candidates.append(Path(extra).expanduser() / filename)

    if config.search_system_path:
        found = shutil.which(name)
        if found:
            candidates.append(Path(found))

    return candidates


def resolve_source(name: str, config: MinutesGenConfig) -> Path:
    """Return the first existing source candidate.

    Raises:
        ProvisioningError: If no candidate exists
    """
    candidates = source_candidates(name, config)
    for candidate in candidates:
        if candidate.is_file():
            logger.debug(f"Resolved {name} source: {candidate}")
            return candidate
    tried = ", ".join(str(c) for c in candidates) or "(none)"
    raise ProvisioningError(f"{name} binary not found. Tried: {tried}")


def is_same_binary(source: Path, target: Path) -> bool:
    """Cheap idempotence check: both exist and have the same byte size."""
    try:
        return target.is_file() and source.stat().st_size == target.stat().st_size
    except OSError:
        return False


class BinaryProvisioner:
    """Deploys and verifies the decoder/prober pair once per process."""

    def __init__(self, config: MinutesGenConfig, runner: ProcessRunner) -> None:
        self.config = config
        self.runner = runner
        self.bin_dir = Path(config.bin_dir)
        self._state = ProvisioningState.NOT_PROVISIONED
        self._lock = threading.Lock()
        self.copied: list[Path] = []

    @property
    def decoder_path(self) -> Path:
        return self.bin_dir / exe_name(DECODER)

    @property
    def prober_path(self) -> Path:
        return self.bin_dir / exe_name(PROBER)

    @property
    def paths(self) -> BinaryLocation:
        return BinaryLocation(self.decoder_path, self.prober_path, self._state)

    @property
    def is_verified(self) -> bool:
        return self._state is ProvisioningState.VERIFIED

    def ensure_provisioned(self) -> BinaryLocation:
        """Deploy and verify the binaries; a no-op once verified.

        Raises:
            ProvisioningError: If a source cannot be located, copy fails,
                or verification fails
        """
        with self._lock:
            if self._state is ProvisioningState.VERIFIED:
                return self.paths

            try:
                self.bin_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ProvisioningError(f"Cannot create {self.bin_dir}: {e}") from e

            for name, target in ((DECODER, self.decoder_path), (PROBER, self.prober_path)):
                source = resolve_source(name, self.config)
                self._deploy(name, source, target)
            self._state = ProvisioningState.PROVISIONED

            for target in (self.decoder_path, self.prober_path):
                try:
                    self.runner.verify(target, timeout=self.config.verify_timeout)
                except BinaryUnverifiedError as e:
                    raise ProvisioningError(f"Verification failed for {target.name}: {e}") from e

            self._state = ProvisioningState.VERIFIED
            logger.info(f"Binaries ready in {self.bin_dir}")
            return self.paths

    def _deploy(self, name: str, source: Path, target: Path) -> None:
        if source.resolve() == target.resolve():
            logger.debug(f"{name}: source is the deployed copy")
        elif is_same_binary(source, target):
            logger.debug(f"{name}: deployed copy is current")
        else:
            try:
                shutil.copyfile(source, target)
            except OSError as e:
                raise ProvisioningError(f"Copying {name} from {source} failed: {e}") from e
            self.runner.forget(target)
            self.copied.append(target)
            logger.info(f"Deployed {name} ({format_bytes(target.stat().st_size)}) to {target}")

        if not IS_WINDOWS:
            try:
                os.chmod(target, 0o755)
            except OSError as e:
                raise ProvisioningError(f"Setting execute permission on {target} failed: {e}") from e
