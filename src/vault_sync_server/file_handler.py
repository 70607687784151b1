"""Local document store: encoding-aware reads, atomic writes, mtime lookups.

All functions are plain blocking I/O; the sync engine calls them through
``run_sync()`` so the event loop never blocks on the filesystem.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from charset_normalizer import from_bytes


class DocumentMissingError(FileNotFoundError):
    """Raised when a document path no longer exists on disk."""

    def __init__(self, path: str | Path):
        self.path = str(path)
        super().__init__(f"Document not found: {path}")


# =============================================================================
# Read
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Reads raw bytes first, then uses charset-normalizer to detect encoding.
    Defaults to UTF-8 for empty files or when detection fails.

    Args:
        path: Path to the file to read.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    return decode_document(path.read_bytes())


def decode_document(raw: bytes) -> tuple[str, str]:
    """Decode raw document bytes, returning (content, encoding)."""
    if not raw:
        return ("", "utf-8")

    result = from_bytes(raw).best()
    if result is None:
        encoding = "utf-8"
        content = raw.decode(encoding, errors="replace")
    else:
        encoding = result.encoding
        # ascii is a strict subset of utf-8
        if encoding == "ascii":
            encoding = "utf-8"
        content = str(result)
    return (content, encoding)


def read_document(path: str | Path) -> str:
    """Return the text of the document at *path*.

    Raises:
        DocumentMissingError: If the document does not exist.
    """
    p = Path(path)
    try:
        content, _ = read_file_with_encoding(p)
    except FileNotFoundError as exc:
        raise DocumentMissingError(p) from exc
    return content


def read_document_bytes(path: str | Path) -> bytes:
    """Return the raw bytes of the document at *path*.

    Raises:
        DocumentMissingError: If the document does not exist.
    """
    p = Path(path)
    try:
        return p.read_bytes()
    except FileNotFoundError as exc:
        raise DocumentMissingError(p) from exc


# =============================================================================
# Write
# =============================================================================


def write_document(
    path: str | Path, content: str, encoding: str = "utf-8"
) -> int:
    """Atomically replace the document at *path* with *content*.

    Writes to a temporary file in the same directory then calls
    ``os.replace()``, so a crash mid-write never leaves a half-written
    document.  Parent directories are created as needed.

    Returns:
        Number of bytes written.
    """
    return write_document_bytes(path, content.encode(encoding))


def write_document_bytes(path: str | Path, encoded: bytes) -> int:
    """Atomically replace the document at *path* with raw *encoded* bytes."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(
        dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(encoded)
        os.replace(tmp_path, target)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return len(encoded)


# =============================================================================
# Stat
# =============================================================================


def stat_document(path: str | Path) -> float:
    """Return the modification time of *path* in milliseconds since epoch.

    Raises:
        DocumentMissingError: If the document does not exist.
    """
    try:
        return os.stat(path).st_mtime_ns / 1_000_000
    except FileNotFoundError as exc:
        raise DocumentMissingError(path) from exc


def document_exists(path: str | Path) -> bool:
    """Return ``True`` if *path* is an existing regular file."""
    return Path(path).is_file()


def delete_document(path: str | Path) -> bool:
    """Remove the document at *path*.  Returns ``False`` if already gone."""
    try:
        os.unlink(path)
    except FileNotFoundError:
        return False
    return True
