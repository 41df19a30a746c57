"""File handler module: encoding-aware reads and atomic writes.

Provides the file I/O used when materialising the corpus into a consumer
project and when decoding documents for the metadata index.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from charset_normalizer import from_bytes

# =============================================================================
# Decoding
# =============================================================================


def decode_bytes(raw: bytes) -> tuple[str, str]:
    """Decode *raw* with automatic encoding detection.

    Defaults to UTF-8 for empty input or when detection fails.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    if not raw:
        return ("", "utf-8")

    result = from_bytes(raw).best()
    if result is None:
        # Detection failed, fall back to utf-8
        encoding = "utf-8"
        content = raw.decode(encoding, errors="replace")
    else:
        encoding = result.encoding
        # ascii is a strict subset of utf-8
        if encoding == "ascii":
            encoding = "utf-8"
        content = str(result)
    return (content, encoding)


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Args:
        path: Path to the file to read.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    return decode_bytes(path.read_bytes())


# =============================================================================
# Writing
# =============================================================================


def write_bytes_atomic(path: Path, data: bytes) -> int:
    """Write *data* to *path* via a temp file in the same directory.

    Parent directories are created as needed.  Readers never observe a
    partially written file: the temp file is renamed over *path* only after
    all bytes are flushed, and removed on any failure.

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return len(data)


def write_file(path: Path, content: str, encoding: str = "utf-8") -> int:
    """Encode *content* and write it atomically.

    Returns:
        Number of bytes written.
    """
    return write_bytes_atomic(path, content.encode(encoding))


def remove_file(path: Path, stop_at: Path | None = None) -> bool:
    """Delete *path* and prune parent directories left empty.

    Pruning walks upwards and stops at *stop_at* (never removed).

    Returns:
        ``True`` if the file existed and was removed.
    """
    try:
        path.unlink()
    except FileNotFoundError:
        return False

    if stop_at is not None:
        parent = path.parent
        while parent != stop_at and stop_at in parent.parents:
            try:
                parent.rmdir()
            except OSError:
                break
            parent = parent.parent
    return True
