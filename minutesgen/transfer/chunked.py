"""
minutesgen.transfer.chunked - Ordered chunk upload and reassembly.

Moves a file too large for a single message across the process boundary.
The sender splits it into fixed-size byte chunks; the receiver stores each
chunk as its own file under a per-session directory and concatenates them
in ascending index order once every chunk has arrived.

Session layout:
    <temp_dir>/<session_id>/chunk-000000
    <temp_dir>/<session_id>/final-<sanitized name>
"""

from __future__ import annotations

import logging
import math
import secrets
import threading
import time
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from minutesgen.config import DEFAULT_CHUNK_SIZE
from minutesgen.exceptions import (
    ChunkCountMismatchError,
    SessionNotFoundError,
    TransferIOError,
)
from minutesgen.io import append_file, remove_tree, write_bytes
from minutesgen.utils import BYTES_LIKE, format_bytes, now_ms, sanitize_filename

logger = logging.getLogger(__name__)


@dataclass
class TransferSession:
    session_id: str
    file_name: str
    file_size: int
    temp_dir: Path
    final_path: Path
    expected_chunks: int
    chunks: dict[int, Path] = field(default_factory=dict)
    start_time: float = field(default_factory=time.monotonic)

    def missing(self) -> list[int]:
        return [i for i in range(self.expected_chunks) if i not in self.chunks]


@dataclass
class FinalizeResult:
    final_path: Path
    file_size: int
    processing_time_ms: int


def chunk_file_name(index: int) -> str:
    """Zero-padded so lexicographic order matches numeric order."""
    return f"chunk-{index:06d}"


def expected_chunk_count(file_size: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    return math.ceil(file_size / chunk_size)


def iter_chunks(path: Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[tuple[int, bytes]]:
    """Sender side: yield (index, bytes) for a local file."""
    with open(path, "rb") as f:
        for index, data in enumerate(iter(lambda: f.read(chunk_size), b"")):
            yield index, data


def new_session_id() -> str:
    return f"session-{now_ms()}-{secrets.token_hex(6)}"


class ChunkedTransferCoordinator:
    """Receiver side of the chunked transfer protocol.

    Sessions are independent. Uploads for different indices of the same
    session may run concurrently; finalize must run once, after all chunks.
    """

    def __init__(self, temp_dir: Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.temp_dir = Path(temp_dir)
        self.chunk_size = chunk_size
        self._sessions: dict[str, TransferSession] = {}
        self._lock = threading.Lock()

    def __contains__(self, session_id: str) -> bool:
        if not isinstance(session_id, str):
            return False
        with self._lock:
            return session_id in self._sessions

    def get_session(self, session_id: str) -> TransferSession:
        if not isinstance(session_id, str):
            raise SessionNotFoundError(repr(session_id))
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def start_session(self, file_name: str, file_size: int) -> str:
        """Allocate a session with its own temp directory.

        Raises:
            ValueError: If file_name is empty or file_size is not a
                non-negative integer
            TransferIOError: If the session directory cannot be created
        """
        if not isinstance(file_name, str) or not file_name:
            raise ValueError("file_name must be a non-empty string")
        if isinstance(file_size, bool) or not isinstance(file_size, int):
            raise ValueError(f"file_size must be an integer, got {type(file_size).__name__}")
        if file_size < 0:
            raise ValueError("file_size must not be negative")

        with self._lock:
            session_id = new_session_id()
            while session_id in self._sessions:
                session_id = new_session_id()

            session_dir = self.temp_dir / session_id
            try:
                session_dir.mkdir(parents=True, exist_ok=False)
            except OSError as e:
                raise TransferIOError(f"Cannot create session directory {session_dir}: {e}") from e

            session = TransferSession(
                session_id=session_id,
                file_name=file_name,
                file_size=file_size,
                temp_dir=session_dir,
                final_path=session_dir / f"final-{sanitize_filename(file_name)}",
                expected_chunks=expected_chunk_count(file_size, self.chunk_size),
            )
            self._sessions[session_id] = session

        logger.debug(
            f"Started {session_id} for {file_name} ({format_bytes(file_size)}, "
            f"{session.expected_chunks} chunks)"
        )
        return session_id

    def upload_chunk(self, session_id: str, index: int, data: bytes) -> None:
        """Store one chunk; re-uploading an index overwrites it.

        Raises:
            SessionNotFoundError: If the session is unknown
            ValueError: If index is not a non-negative integer or data is
                not bytes
            TransferIOError: If the chunk cannot be written
        """
        if isinstance(index, bool) or not isinstance(index, int):
            raise ValueError(f"chunk index must be an integer, got {type(index).__name__}")
        if index < 0:
            raise ValueError("chunk index must not be negative")
        if not isinstance(data, BYTES_LIKE):
            raise ValueError(f"chunk data must be bytes, got {type(data).__name__}")
        session = self.get_session(session_id)

        chunk_path = session.temp_dir / chunk_file_name(index)
        try:
            write_bytes(chunk_path, bytes(data))
        except OSError as e:
            with self._lock:
                session.chunks.pop(index, None)
            try:
                chunk_path.unlink(missing_ok=True)
            except OSError as unlink_error:
                logger.warning(f"Could not remove partial chunk {chunk_path}: {unlink_error}")
            raise TransferIOError(f"Writing chunk {index} of {session_id} failed: {e}") from e

        with self._lock:
            session.chunks[index] = chunk_path
            received = len(session.chunks)
        logger.debug(f"{session_id}: chunk {index} stored ({received}/{session.expected_chunks})")

    def finalize_session(self, session_id: str) -> FinalizeResult:
        """Concatenate all chunks, strictly in index order, into the final file.

        Each chunk file is deleted as soon as it has been consumed. On a
        count mismatch nothing is merged and the session stays open.

        Raises:
            SessionNotFoundError: If the session is unknown or already finalized
            ChunkCountMismatchError: If any index in 0..expected-1 is missing
            TransferIOError: If merging fails; the session is discarded
        """
        session = self.get_session(session_id)
        with self._lock:
            missing = session.missing()
            have = len(session.chunks)
        if have != session.expected_chunks or missing:
            raise ChunkCountMismatchError(have, session.expected_chunks)

        try:
            with open(session.final_path, "wb") as out:
                for index in range(session.expected_chunks):
                    chunk_path = session.chunks[index]
                    append_file(out, chunk_path)
                    chunk_path.unlink(missing_ok=True)
            file_size = session.final_path.stat().st_size
        except OSError as e:
            logger.error(f"{session_id}: merge failed: {e}")
            self._discard(session_id)
            raise TransferIOError(f"Merging chunks for {session_id} failed: {e}") from e

        processing_time_ms = int((time.monotonic() - session.start_time) * 1000)
        with self._lock:
            self._sessions.pop(session_id, None)

        if file_size != session.file_size:
            logger.warning(
                f"{session_id}: merged size {file_size} differs from announced {session.file_size}"
            )
        logger.info(
            f"{session_id}: merged {session.expected_chunks} chunks into "
            f"{session.final_path.name} ({format_bytes(file_size)}) in {processing_time_ms}ms"
        )
        return FinalizeResult(session.final_path, file_size, processing_time_ms)

    def cleanup_session(self, session_id: str) -> bool:
        """Best-effort removal of a session; never raises. Always returns True."""
        try:
            self._discard(session_id)
        except Exception as e:
            logger.warning(f"Cleanup of {session_id} incomplete: {e}")
        return True

    def cleanup_all(self) -> None:
        with self._lock:
            session_ids = list(self._sessions)
        for session_id in session_ids:
            self.cleanup_session(session_id)

    def _discard(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None and not remove_tree(session.temp_dir):
            logger.warning(f"Could not fully remove {session.temp_dir}")
