"""
Atomic Export Writer.

Publishes a capture's rendered Markdown into the vault exactly once and
records every outcome in the export audit trail:

- initial: file written via temp, fsync, rename; capture -> exported
- duplicate_skip: identical bytes already at the destination, or the
  capture was folded onto another capture's content; no write;
  capture -> exported_duplicate
- placeholder: the destination holds different content for the same id.
  Nothing is overwritten; the collision is logged at the `integrity` stage
  with error_flag set; capture -> exported_placeholder

Filesystem failures and the ledger writes that follow a publish go
through the retry policy. Transient ones that exhaust the budget leave the
capture in `transcribed` for a later pass. Fatal ones (disk full,
read-only medium) halt the writer until an operator calls `clear_halt()`.
The halt is persisted in `sync_state`, so a new writer on the same ledger
starts halted too.
"""

import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

from ..schemas.capture import EXPORT_MODE_STATUS, CaptureStatus, ErrorStage, ExportMode
from ..schemas.content_hash import compute_sha256
from ..schemas.identifiers import validate_capture_id
from ..state_store import CaptureRecord, ExportRecord, LedgerStore
from ..state_store.state_machine import EXPORTED_STATES
from ..vault import (
    DEFAULT_INBOX_DIR,
    DEFAULT_STAGING_DIR,
    CollisionResult,
    check_collision,
    resolve_export_path,
    resolve_staging_path,
    vault_relative,
    write_atomic,
)
from .retry import RetryPolicy, error_code_name

logger = logging.getLogger(__name__)

T = TypeVar("T")

# sync_state key holding the reason of an uncleared halt
HALT_CURSOR_KEY = "export_halt"


class ExportError(Exception):
    """Base exception for export errors."""

    pass


class ExportNotEligible(ExportError):
    """The capture has no finalized content to export."""

    def __init__(self, capture_id: str, status: CaptureStatus):
        self.capture_id = capture_id
        self.status = status
        super().__init__(f"Capture {capture_id} is {status.value} and cannot be exported")


class TransientExportError(ExportError):
    """Retries were exhausted; the capture stays in its pre-export status."""

    def __init__(self, capture_id: str, attempts: int, cause: BaseException):
        self.capture_id = capture_id
        self.attempts = attempts
        self.cause = cause
        super().__init__(
            f"Export of {capture_id} failed after {attempts} attempts "
            f"({error_code_name(cause)}): {cause}"
        )


class FatalExportError(ExportError):
    """Capacity or medium failure; the writer is halted."""

    def __init__(self, capture_id: str, cause: BaseException):
        self.capture_id = capture_id
        self.cause = cause
        super().__init__(
            f"Export halted on {capture_id} ({error_code_name(cause)}): {cause}"
        )


class ExportHaltedError(ExportError):
    """The writer is halted after a fatal failure."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Export writer is halted: {reason}")


class IntegrityViolation(ExportError):
    """Destination holds different content for the same capture id."""

    def __init__(self, capture_id: str, vault_path: str):
        self.capture_id = capture_id
        self.vault_path = vault_path
        super().__init__(
            f"Filename collision for {capture_id}: {vault_path} exists with different content"
        )


@dataclass
class ExportResult:
    """Outcome of a publish call."""

    capture_id: str
    mode: ExportMode
    vault_path: str
    record: ExportRecord
    violation: IntegrityViolation | None = None

    @property
    def error_flag(self) -> bool:
        return self.record.error_flag


class AtomicExportWriter:
    """
    Publishes captures into a vault.

    The writer is the only component that touches the vault. It owns its
    staging area (`.trash/`), which is disjoint from the destination area
    (`inbox/`).
    """

    def __init__(
        self,
        store: LedgerStore,
        retry_policy: RetryPolicy | None = None,
        inbox_dir: str = DEFAULT_INBOX_DIR,
        staging_dir: str = DEFAULT_STAGING_DIR,
    ):
        """
        Initialize the writer.

        Args:
            store: Staging ledger for audit and status
            retry_policy: Policy for filesystem steps
            inbox_dir: Destination directory inside the vault
            staging_dir: Staging directory inside the vault
        """
        self.store = store
        self.retry_policy = retry_policy or RetryPolicy()
        self.inbox_dir = inbox_dir
        self.staging_dir = staging_dir
        self._halt_reason: str | None = store.read_cursor(HALT_CURSOR_KEY)
        if self._halt_reason is not None:
            logger.warning(f"Export writer starts halted: {self._halt_reason}")

    @property
    def halted(self) -> bool:
        return self._halt_reason is not None

    @property
    def halt_reason(self) -> str | None:
        return self._halt_reason

    def clear_halt(self) -> None:
        """Resume publishing after an operator has fixed the fatal condition."""
        self.store.delete_cursor(HALT_CURSOR_KEY)
        if self._halt_reason is not None:
            logger.info(f"Export writer resumed (was halted: {self._halt_reason})")
        self._halt_reason = None

    def publish(
        self, capture_id: str, rendered_content: str, vault_root: Path | str
    ) -> ExportResult:
        """
        Publish a capture's rendered content into the vault.

        Args:
            capture_id: Capture to export
            rendered_content: Final Markdown
            vault_root: Vault root directory

        Returns:
            ExportResult with the mode and vault-relative path

        Raises:
            InvalidIdentifier: capture_id is malformed (nothing touched)
            ExportHaltedError: A previous fatal failure has not been cleared
            CaptureNotFound: Unknown capture
            ExportNotEligible: Capture is staged or failed transcription
            TransientExportError: Retry budget exhausted
            FatalExportError: Capacity or medium failure; writer now halted
        """
        validate_capture_id(capture_id)
        if self._halt_reason is not None:
            raise ExportHaltedError(self._halt_reason)

        capture = self.store.require_capture(capture_id)
        if capture.status is not CaptureStatus.TRANSCRIBED and capture.status not in EXPORTED_STATES:
            raise ExportNotEligible(capture_id, capture.status)

        vault_root = Path(vault_root)

        if capture.is_duplicate:
            return self._record_folded_duplicate(capture, vault_root)

        export_path = resolve_export_path(vault_root, capture_id, self.inbox_dir)
        staging_path = resolve_staging_path(vault_root, capture_id, self.staging_dir)
        vault_path = vault_relative(vault_root, export_path)
        content_hash = compute_sha256(rendered_content)

        def attempt() -> CollisionResult:
            collision = check_collision(export_path, content_hash)
            if collision is CollisionResult.NO_COLLISION:
                write_atomic(staging_path, export_path, rendered_content)
            return collision

        collision = self._guarded(capture_id, attempt, f"export of {capture_id}")

        if collision is CollisionResult.NO_COLLISION:
            return self._record(capture, ExportMode.INITIAL, vault_path, capture.content_hash)

        if collision is CollisionResult.DUPLICATE:
            logger.info(f"Capture {capture_id} already present at {vault_path}, skipping write")
            return self._record(capture, ExportMode.DUPLICATE_SKIP, vault_path, capture.content_hash)

        violation = IntegrityViolation(capture_id, vault_path)
        logger.error(str(violation))
        self._guarded(
            capture_id,
            lambda: self.store.record_error(
                ErrorStage.INTEGRITY, str(violation), capture_id=capture_id
            ),
            f"integrity error record for {capture_id}",
        )
        result = self._record(capture, ExportMode.PLACEHOLDER, vault_path, None, error_flag=True)
        result.violation = violation
        return result

    def _record_folded_duplicate(self, capture: CaptureRecord, vault_root: Path) -> ExportResult:
        """Audit a capture whose content already belongs to another capture."""
        original_id = capture.meta.duplicate_of
        original = self.store.get_capture(original_id)
        vault_path = vault_relative(
            vault_root, resolve_export_path(vault_root, original_id, self.inbox_dir)
        )
        hash_at_export = original.content_hash if original else None
        logger.info(f"Capture {capture.id} duplicates {original_id}, skipping write")
        return self._record(capture, ExportMode.DUPLICATE_SKIP, vault_path, hash_at_export)

    def _record(
        self,
        capture: CaptureRecord,
        mode: ExportMode,
        vault_path: str,
        hash_at_export: str | None,
        error_flag: bool = False,
    ) -> ExportResult:
        # Captures that already reached an export status only gain an audit row
        new_status = EXPORT_MODE_STATUS[mode] if capture.status is CaptureStatus.TRANSCRIBED else None
        record = self._guarded(
            capture.id,
            lambda: self.store.record_export(
                capture.id,
                vault_path,
                mode,
                hash_at_export=hash_at_export,
                error_flag=error_flag,
                new_status=new_status,
            ),
            f"export record for {capture.id}",
        )
        if mode is ExportMode.INITIAL:
            logger.info(f"Exported capture {capture.id} -> {vault_path}")
        return ExportResult(capture.id, mode, vault_path, record)

    def _guarded(self, capture_id: str, operation: Callable[[], T], description: str) -> T:
        """
        Run a filesystem step or ledger write under the retry policy.

        Ledger writes after a rename get the same treatment as the write
        itself: a fatal failure halts the writer. When the audit row is lost
        the file stays in the vault, and the next pass finds identical bytes
        and records a duplicate_skip.
        """
        outcome = self.retry_policy.run(operation, description=description)

        if outcome.is_fatal:
            self._halt(capture_id, outcome.error)
            raise FatalExportError(capture_id, outcome.error)

        if not outcome.ok:
            error = TransientExportError(capture_id, outcome.attempts, outcome.error)
            self._log_export_error(capture_id, str(error))
            raise error

        return outcome.value

    def _halt(self, capture_id: str, cause: BaseException) -> None:
        self._halt_reason = f"{error_code_name(cause)} while exporting {capture_id}: {cause}"
        logger.error(f"Halting export writer: {self._halt_reason}")
        self._log_export_error(capture_id, f"Fatal export failure: {self._halt_reason}")
        try:
            self.store.write_cursor(HALT_CURSOR_KEY, self._halt_reason)
        except sqlite3.Error as e:
            logger.error(f"Could not persist export halt: {e}")

    def _log_export_error(self, capture_id: str, message: str) -> None:
        # The ledger may sit on the same failing volume
        try:
            self.store.record_error(ErrorStage.EXPORT, message, capture_id=capture_id)
        except sqlite3.Error as e:
            logger.error(f"Could not record export error for {capture_id}: {e}")
