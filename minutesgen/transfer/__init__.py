"""
minutesgen.transfer - Chunked file transfer across a size-limited channel.
"""

from __future__ import annotations
