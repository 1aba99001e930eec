"""
minutesgen.io - JSON write helper, atomic file writes.

Centralized I/O utilities shared by the CLI and the transfer layer.
"""

from __future__ import annotations

import json
import shutil
import tempfile
from pathlib import Path
from typing import Any


def write_json(path: Path, data: Any, indent: int = 2) -> None:
    """Write JSON file atomically with pretty formatting.

    Writes to a temp file first, then renames to prevent corruption
    on interruption.

    Args:
        path: Destination path for JSON file
        data: Data to write
        indent: Indentation level for pretty printing (default: 2)
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        delete=False,
        suffix=".tmp",
    ) as tmp:
        tmp_path = Path(tmp.name)
        try:
            json.dump(data, tmp, indent=indent, ensure_ascii=False, default=str)
        except Exception:
            tmp_path.unlink(missing_ok=True)
            raise
    tmp_path.replace(path)


def write_bytes(path: Path, data: bytes) -> None:
    """Write binary data, creating parent directories as needed."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        f.write(data)


def append_file(dest, source: Path) -> int:
    """Copy the contents of source onto an open binary file object.

    Returns:
        Number of bytes copied
    """
    before = dest.tell()
    with open(source, "rb") as f:
        shutil.copyfileobj(f, dest, length=1024 * 1024)
    return dest.tell() - before


def remove_tree(path: Path) -> bool:
    """Remove a directory tree, ignoring errors.

    Returns:
        True if the path no longer exists afterwards
    """
    shutil.rmtree(path, ignore_errors=True)
    return not path.exists()
