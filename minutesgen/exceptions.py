"""
minutesgen.exceptions - Custom exception classes.

All minutesgen-specific exceptions inherit from MinutesGenError.
"""

from __future__ import annotations


class MinutesGenError(Exception):
    """Base exception for all minutesgen errors."""

    pass


class ConfigError(MinutesGenError):
    """Configuration loading or validation error."""

    pass


class ProvisioningError(MinutesGenError):
    """Decoder/prober binaries could not be located, deployed or verified."""

    pass


class BinaryUnverifiedError(MinutesGenError):
    """Every execution strategy failed, or the binary was never verified."""

    def __init__(self, path: str, message: str, attempted: list[str] | None = None):
        self.path = path
        self.message = message
        self.attempted = attempted or []
        super().__init__(f"{path}: {message}")


class ProbeError(MinutesGenError):
    """Prober execution failed."""

    pass


class SegmentExtractionError(MinutesGenError):
    """Decoding a single segment failed; the whole split is aborted."""

    def __init__(self, index: int, cause: str):
        self.index = index
        self.cause = cause
        super().__init__(f"Segment {index} extraction failed: {cause}")


class TransferError(MinutesGenError):
    """Chunked transfer error."""

    pass


class SessionNotFoundError(TransferError):
    """Unknown or already finalized transfer session."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class ChunkCountMismatchError(TransferError):
    """Finalize was requested before every expected chunk arrived."""

    def __init__(self, have: int, want: int):
        self.have = have
        self.want = want
        super().__init__(f"Chunk count mismatch: {have}/{want}")


class TransferIOError(TransferError):
    """Filesystem failure while writing or merging chunks."""

    pass


class ExecutionError(MinutesGenError):
    """A single execution strategy could not run the binary."""

    pass
