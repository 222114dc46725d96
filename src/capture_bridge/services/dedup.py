"""
Deduplication engine.

Arbitrates intake against the two independent dedup keys of the ledger:

- (channel, channel_native_id): the same upstream item observed again
  (re-poll, re-delivery). Idempotent no-op, no second row. A re-observation
  long after the original intake is logged at the `poll` stage.
- content_hash: identical content arriving through a different upstream
  event. The row is still staged, but with no hash of its own and
  `meta.duplicate_of` pointing at the original, so export records a
  duplicate skip instead of writing a second file.

Either key can fire without the other, so both are checked on every
intake. The engine computes no hash itself; callers pass the fingerprint
of finalized content.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum

from ..schemas.capture import CaptureMeta, CaptureSource, CaptureStatus, ErrorStage
from ..state_store import (
    CaptureRecord,
    DuplicateContent,
    DuplicateSource,
    LedgerStore,
    NewCapture,
)
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_REPOLL_WINDOW = timedelta(hours=24)


class IntakeDecision(str, Enum):
    """What happened to an incoming artifact."""

    ACCEPTED = "accepted"
    DUPLICATE_CONTENT = "duplicate_content"
    REPOLLED = "repolled"


@dataclass
class IntakeResult:
    """Outcome of an intake or content finalization."""

    decision: IntakeDecision
    capture_id: str
    duplicate_of: str | None = None

    @property
    def created(self) -> bool:
        """A new capture row exists because of this call."""
        return self.decision is not IntakeDecision.REPOLLED


class DeduplicationEngine:
    """
    Intake front door for pollers and the transcription collaborator.

    Store writes run under a retry policy so lock contention and flaky
    storage get a bounded number of attempts; the dedup outcomes themselves
    are resolved here and never surface as errors.
    """

    def __init__(
        self,
        store: LedgerStore,
        retry_policy: RetryPolicy | None = None,
        repoll_window: timedelta = DEFAULT_REPOLL_WINDOW,
    ):
        """
        Initialize the engine.

        Args:
            store: Staging ledger
            retry_policy: Policy for store writes (default: 3 attempts)
            repoll_window: Re-observations older than this are logged
        """
        self.store = store
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=3, base_delay=0.05)
        self.repoll_window = repoll_window

    def _write(self, operation, description: str):
        outcome = self.retry_policy.run(operation, description=description)
        if not outcome.ok:
            raise outcome.error
        return outcome.value

    def intake(
        self,
        source: CaptureSource | str,
        meta: CaptureMeta,
        raw_content: str = "",
        content_hash: str | None = None,
    ) -> IntakeResult:
        """
        Stage an artifact discovered by a poller.

        Args:
            source: voice or email
            meta: Typed metadata including the upstream identity
            raw_content: Payload known at intake (email body; empty for voice)
            content_hash: Fingerprint when content is already final

        Returns:
            IntakeResult describing the decision
        """
        capture = NewCapture(
            source=CaptureSource(source),
            raw_content=raw_content,
            meta=meta,
            content_hash=content_hash,
        )

        try:
            capture_id = self._write(lambda: self.store.insert(capture), "capture insert")
        except DuplicateSource as e:
            return self._repolled(e)
        except DuplicateContent as e:
            return self._fold_duplicate_intake(capture, e)

        logger.info(
            f"Accepted {capture.source.value} capture {capture_id}"
            f" from {meta.channel}:{meta.channel_native_id}"
        )
        return IntakeResult(IntakeDecision.ACCEPTED, capture_id)

    def _repolled(self, error: DuplicateSource) -> IntakeResult:
        """Resolve a re-observed upstream item into a no-op."""
        existing_id = error.existing_id
        existing = self.store.get_capture(existing_id) if existing_id else None
        logger.debug(f"Ignoring re-poll of {error.channel}:{error.channel_native_id}")

        if existing is not None and self._older_than_window(existing):
            message = (
                f"Upstream item {error.channel}:{error.channel_native_id} re-observed "
                f"after the {self.repoll_window} re-poll window (first staged {existing.created_at})"
            )
            logger.warning(message)
            self.store.record_error(ErrorStage.POLL, message, capture_id=existing.id)

        return IntakeResult(IntakeDecision.REPOLLED, existing_id or "")

    def _older_than_window(self, capture: CaptureRecord) -> bool:
        created = datetime.fromisoformat(capture.created_at.replace("Z", "+00:00"))
        return datetime.now(timezone.utc) - created > self.repoll_window

    def _fold_duplicate_intake(self, capture: NewCapture, error: DuplicateContent) -> IntakeResult:
        """Stage a content duplicate as a dependent row without its own hash."""
        folded = replace(
            capture,
            content_hash=None,
            meta=replace(capture.meta, duplicate_of=error.existing_id),
        )
        try:
            capture_id = self._write(lambda: self.store.insert(folded), "duplicate capture insert")
        except DuplicateSource as e:
            return self._repolled(e)

        logger.info(
            f"Staged capture {capture_id} as content duplicate of {error.existing_id}"
        )
        return IntakeResult(IntakeDecision.DUPLICATE_CONTENT, capture_id, error.existing_id)

    def finalize_transcription(
        self,
        capture_id: str,
        raw_content: str,
        content_hash: str,
    ) -> IntakeResult:
        """
        Record finished transcription: staged -> transcribed.

        When another capture already holds the hash, the content is still
        stored but the row is folded onto the original. A capture folded at
        intake whose final content turns out unique is unfolded again.

        Raises:
            InvalidTransition: The capture is not staged
        """
        fields = {"raw_content": raw_content, "content_hash": content_hash}
        capture = self.store.require_capture(capture_id)
        if capture.is_duplicate:
            fields["meta"] = replace(capture.meta, duplicate_of=None)
        try:
            self._write(
                lambda: self.store.update_status(capture_id, CaptureStatus.TRANSCRIBED, fields),
                "transcription update",
            )
        except DuplicateContent as e:
            folded = {
                "raw_content": raw_content,
                "content_hash": None,
                "meta": replace(capture.meta, duplicate_of=e.existing_id),
            }
            self._write(
                lambda: self.store.update_status(capture_id, CaptureStatus.TRANSCRIBED, folded),
                "duplicate transcription update",
            )
            logger.info(f"Transcribed capture {capture_id} duplicates {e.existing_id}")
            return IntakeResult(IntakeDecision.DUPLICATE_CONTENT, capture_id, e.existing_id)

        if capture.is_duplicate:
            logger.info(
                f"Transcribed capture {capture_id} no longer duplicates {capture.meta.duplicate_of}"
            )
        else:
            logger.info(f"Transcribed capture {capture_id}")
        return IntakeResult(IntakeDecision.ACCEPTED, capture_id)

    def fail_transcription(self, capture_id: str, reason: str) -> CaptureRecord:
        """
        Record a failed transcription: staged -> failed_transcription.

        The failure is terminal for this capture; the reason lands in the
        error log at the `transcribe` stage.
        """
        capture = self._write(
            lambda: self.store.update_status(capture_id, CaptureStatus.FAILED_TRANSCRIPTION),
            "transcription failure update",
        )
        self.store.record_error(ErrorStage.TRANSCRIBE, reason, capture_id=capture_id)
        logger.warning(f"Transcription failed for capture {capture_id}: {reason}")
        return capture
