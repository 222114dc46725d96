"""
Ledger backups.

Hourly-named copies of the ledger (`ledger-YYYYMMDD-HH.sqlite`, UTC),
verified with `PRAGMA integrity_check` and pruned to a fixed count.
Failures are recorded at the `backup` stage.
"""

import logging
import sqlite3
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from ..schemas.capture import ErrorStage
from ..state_store import LedgerStore

logger = logging.getLogger(__name__)

BACKUP_PATTERN = "ledger-*.sqlite"


class BackupError(Exception):
    """Backup could not be created or verified."""

    pass


@dataclass
class BackupResult:
    """A created backup."""

    path: Path
    size_bytes: int
    duration_seconds: float


def backup_filename(now: datetime) -> str:
    """File name for a backup taken at `now` (converted to UTC)."""
    return f"ledger-{now.astimezone(timezone.utc):%Y%m%d-%H}.sqlite"


class LedgerBackup:
    """Creates, verifies and prunes ledger backups."""

    def __init__(self, store: LedgerStore, backup_dir: Path | str, keep: int = 24):
        """
        Initialize backup management.

        Args:
            store: Ledger to back up
            backup_dir: Directory receiving backup files
            keep: Number of newest backups retained by prune()
        """
        self.store = store
        self.backup_dir = Path(backup_dir)
        self.keep = keep

    def create(self, now: datetime | None = None) -> BackupResult:
        """
        Back up the ledger. A backup in the same UTC hour is replaced.

        Raises:
            BackupError: The copy failed
        """
        now = now or datetime.now(timezone.utc)
        dest = self.backup_dir / backup_filename(now)
        start = time.monotonic()

        try:
            if dest.exists():
                dest.unlink()
            self.store.backup_to(dest)
        except (sqlite3.Error, OSError) as e:
            message = f"Backup to {dest} failed: {e}"
            logger.error(message)
            self.store.record_error(ErrorStage.BACKUP, message)
            raise BackupError(message) from e

        result = BackupResult(
            path=dest,
            size_bytes=dest.stat().st_size,
            duration_seconds=time.monotonic() - start,
        )
        logger.info(f"Backed up ledger to {dest} ({result.size_bytes} bytes)")
        return result

    def verify(self, backup_path: Path | str) -> bool:
        """
        Run an integrity check against a backup file, read-only.

        Returns:
            True if the backup is sound
        """
        backup_path = Path(backup_path)
        problem: str | None = None

        if not backup_path.exists():
            problem = "file does not exist"
        else:
            try:
                conn = sqlite3.connect(f"file:{backup_path}?mode=ro", uri=True)
                try:
                    rows = conn.execute("PRAGMA integrity_check").fetchall()
                finally:
                    conn.close()
                if [r[0] for r in rows] != ["ok"]:
                    problem = "; ".join(str(r[0]) for r in rows)
            except sqlite3.DatabaseError as e:
                problem = str(e)

        if problem is None:
            return True

        message = f"Backup verification failed for {backup_path}: {problem}"
        logger.error(message)
        self.store.record_error(ErrorStage.BACKUP, message)
        return False

    def list_backups(self) -> list[Path]:
        """Backup files, newest first."""
        if not self.backup_dir.exists():
            return []
        return sorted(self.backup_dir.glob(BACKUP_PATTERN), reverse=True)

    def prune(self) -> list[Path]:
        """Delete all but the newest `keep` backups. Returns removed paths."""
        removed = []
        for path in self.list_backups()[self.keep :]:
            path.unlink()
            removed.append(path)
            logger.debug(f"Pruned backup {path}")
        return removed
