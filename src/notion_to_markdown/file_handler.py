"""File handler module: encoding-aware read, atomic write, scoped removal.

Provides the filesystem infrastructure used by the output map builder, the
asset tracker and the sync engine. Writes always go to a temporary file in
the destination directory followed by ``os.replace()``, so a crash never
leaves a half-written file in place of a valid prior one.
"""

import logging
import os
import shutil
import tempfile
from pathlib import Path

from charset_normalizer import from_bytes

logger = logging.getLogger(__name__)

# =============================================================================
# File Read
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
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    result = from_bytes(raw).best()
    if result is None:
        # Detection failed, fall back to utf-8
        encoding = "utf-8"
        content = raw.decode(encoding, errors="replace")
    else:
        encoding = result.encoding
        # Normalize ascii to utf-8 (ascii is a strict subset of utf-8)
        if encoding == "ascii":
            encoding = "utf-8"
        content = str(result)
    return (content, encoding)


# =============================================================================
# Atomic Write
# =============================================================================


def write_bytes_atomic(path: Path, data: bytes) -> int:
    """Atomically write *data* to *path*, creating parent directories.

    Args:
        path: Destination file.
        data: Bytes to write.

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent), prefix=".", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up temp file on any failure.
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return len(data)


def write_file(
    path: Path, content: str, encoding: str = "utf-8"
) -> int:
    """Atomically write text content to a file.

    Args:
        path: Path to the output file.
        content: String content to write.
        encoding: Encoding to use (default: utf-8).

    Returns:
        Number of bytes written.
    """
    return write_bytes_atomic(path, content.encode(encoding))


# =============================================================================
# Removal
# =============================================================================


def remove_path(path: Path) -> bool:
    """Remove a file or a whole directory tree.

    Args:
        path: File or directory to remove.

    Returns:
        ``True`` if something was removed, ``False`` if *path* was absent.
    """
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
        logger.debug("Removed directory %s", path)
        return True
    if path.exists() or path.is_symlink():
        path.unlink()
        logger.debug("Removed file %s", path)
        return True
    return False
