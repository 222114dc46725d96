"""
Startup recovery sweep.

After a crash the ledger is authoritative: committed transactions survive
and anything half-done on disk is invisible under its export name. The
sweep:

- lists captures that still have work ahead (`staged`, `transcribed`),
  oldest first
- reports captures not updated within `stale_after`
- quarantines voice captures whose audio file is gone
- removes leftover staging files from interrupted writes
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from pathlib import Path

from ..schemas.capture import CaptureSource, ErrorStage
from ..schemas.identifiers import is_valid_capture_id
from ..state_store import CaptureRecord, LedgerStore, utcnow_iso
from ..vault import DEFAULT_STAGING_DIR
from ..vault.paths import STAGING_SUFFIX

logger = logging.getLogger(__name__)


@dataclass
class RecoveryReport:
    """What the sweep found."""

    found: int = 0
    resumable: list[str] = field(default_factory=list)
    stale: list[str] = field(default_factory=list)
    quarantined: list[str] = field(default_factory=list)
    removed_staging_files: list[str] = field(default_factory=list)


class RecoverySweep:
    """Reconciles the ledger and the staging area at startup."""

    def __init__(
        self,
        store: LedgerStore,
        vault_root: Path | str | None = None,
        staging_dir: str = DEFAULT_STAGING_DIR,
        stale_after: timedelta = timedelta(minutes=10),
    ):
        self.store = store
        self.vault_root = Path(vault_root) if vault_root is not None else None
        self.staging_dir = staging_dir
        self.stale_after = stale_after

    def run(self, now: datetime | None = None) -> RecoveryReport:
        """Run the sweep once."""
        now = now or datetime.now(timezone.utc)
        report = RecoveryReport()

        captures = self.store.list_recoverable_captures()
        report.found = len(captures)

        for capture in captures:
            if self._is_quarantined(capture):
                continue

            if self._audio_missing(capture):
                self._quarantine(capture)
                report.quarantined.append(capture.id)
                continue

            age = now - datetime.fromisoformat(capture.updated_at.replace("Z", "+00:00"))
            if age > self.stale_after:
                logger.warning(
                    f"Capture {capture.id} stuck in {capture.status.value} "
                    f"for {age.total_seconds() / 60:.1f} minutes"
                )
                report.stale.append(capture.id)
            else:
                report.resumable.append(capture.id)

        report.removed_staging_files = self._remove_orphaned_staging_files()

        logger.info(
            f"Recovery: {report.found} open captures, {len(report.stale)} stale, "
            f"{len(report.quarantined)} quarantined, "
            f"{len(report.removed_staging_files)} staging files removed"
        )
        return report

    @staticmethod
    def _is_quarantined(capture: CaptureRecord) -> bool:
        return bool(capture.meta.extra.get("integrity", {}).get("quarantine"))

    @staticmethod
    def _audio_missing(capture: CaptureRecord) -> bool:
        file_path = capture.meta.extra.get("file_path")
        return (
            capture.source is CaptureSource.VOICE
            and bool(file_path)
            and not Path(file_path).exists()
        )

    def _quarantine(self, capture: CaptureRecord) -> None:
        extra = dict(capture.meta.extra)
        extra["integrity"] = {
            "quarantine": True,
            "quarantine_reason": "missing_file",
            "quarantine_timestamp": utcnow_iso(),
        }
        self.store.update_meta(capture.id, replace(capture.meta, extra=extra))

        message = f"Voice file missing for capture {capture.id}: {capture.meta.extra['file_path']}"
        logger.warning(message)
        self.store.record_error(ErrorStage.INTEGRITY, message, capture_id=capture.id)

    def _remove_orphaned_staging_files(self) -> list[str]:
        if self.vault_root is None:
            return []

        staging = self.vault_root / self.staging_dir
        if not staging.is_dir():
            return []

        removed = []
        for path in sorted(staging.glob(f"*{STAGING_SUFFIX}")):
            if not is_valid_capture_id(path.stem):
                continue
            try:
                path.unlink()
            except OSError as e:
                logger.warning(f"Could not remove staging file {path}: {e}")
                continue
            removed.append(path.name)
            logger.debug(f"Removed interrupted staging file {path}")
        return removed
