"""
Atomic file writer using the temp-then-rename pattern.

Content is written to the staging path, flushed and fsynced, then renamed
over the destination in one `os.replace`. A reader of the destination sees
either no file or the complete content; a crash before the rename leaves
only a staging file, which recovery sweeps away.
"""

import logging
import os
from enum import Enum
from pathlib import Path

from ..schemas.content_hash import compute_sha256

logger = logging.getLogger(__name__)


class CollisionResult(str, Enum):
    """State of the destination before a write."""

    NO_COLLISION = "no_collision"
    DUPLICATE = "duplicate"  # Same bytes already there
    CONFLICT = "conflict"  # Something different is there


def check_collision(export_path: Path, content_hash: str) -> CollisionResult:
    """
    Compare an existing destination file against the content about to be written.

    Args:
        export_path: Destination path
        content_hash: SHA-256 of the UTF-8 bytes to be written

    Returns:
        CollisionResult
    """
    try:
        existing = export_path.read_bytes()
    except FileNotFoundError:
        return CollisionResult.NO_COLLISION
    except IsADirectoryError:
        return CollisionResult.CONFLICT

    if compute_sha256(existing) == content_hash:
        return CollisionResult.DUPLICATE
    return CollisionResult.CONFLICT


def _fsync_directory(directory: Path) -> None:
    """Persist a directory entry after a rename (POSIX only)."""
    if not hasattr(os, "O_DIRECTORY"):
        return
    try:
        fd = os.open(directory, os.O_RDONLY | os.O_DIRECTORY)
    except OSError as e:
        logger.warning(f"Could not open {directory} to sync the rename: {e}")
        return
    try:
        os.fsync(fd)
    except OSError as e:
        logger.warning(f"Directory sync of {directory} failed after rename: {e}")
    finally:
        os.close(fd)


def write_atomic(staging_path: Path, export_path: Path, content: str) -> None:
    """
    Publish content to export_path via staging_path.

    Steps: write staging file, flush + fsync, atomic rename, sync parent
    directory. On any failure before the rename the staging file is removed
    and the error propagates; the destination is left untouched.

    Raises:
        OSError: Write, sync or rename failed
    """
    data = content.encode("utf-8")
    staging_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(staging_path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

        export_path.parent.mkdir(parents=True, exist_ok=True)
        os.replace(staging_path, export_path)

    except OSError:
        try:
            staging_path.unlink(missing_ok=True)
        except OSError as cleanup_error:
            logger.warning(f"Could not remove staging file {staging_path}: {cleanup_error}")
        raise

    _fsync_directory(export_path.parent)
