"""Atomic file persistence for process-wide caches.

This module provides the small write helpers shared by the font cache and
the short-URL store. Both are read by concurrent requests while another
request may be writing, so every write goes to a temporary file in the
destination directory first and is then moved into place with
``os.replace``. Readers therefore see either the previous file or the
complete new one, never a partially written file.

Environment variables:
    DATA_DIR: Base directory for persisted service data (default './data').
"""

from __future__ import annotations

import os
import tempfile

DATA_DIR: str = os.getenv("DATA_DIR", "./data")


def _ensure_dir(path: str) -> None:
    """Create parent directories for the given path if they do not exist."""
    if path:
        os.makedirs(path, exist_ok=True)


def atomic_write_bytes(dest_path: str, data: bytes) -> str:
    """Persist a byte string at ``dest_path`` atomically.

    Args:
        dest_path: Final location of the file.
        data: Raw byte content to write.

    Returns:
        The destination path.

    Raises:
        OSError: If the directory cannot be created or the write fails. The
            temporary file is removed before the error propagates.
    """
    directory = os.path.dirname(dest_path)
    _ensure_dir(directory)
    fd, tmp_path = tempfile.mkstemp(dir=directory or ".", prefix=".tmp-", suffix=os.path.basename(dest_path))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, dest_path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
    return dest_path


def atomic_write_text(dest_path: str, text: str) -> str:
    """Text counterpart of :func:`atomic_write_bytes` (UTF-8)."""
    return atomic_write_bytes(dest_path, text.encode("utf-8"))


def data_path(*parts: str) -> str:
    """Build a path inside ``DATA_DIR``."""
    return os.path.join(DATA_DIR, *parts)
