"""
Capture record vocabulary.

Enumerations for the persisted `status`, `source`, `mode` and `stage`
columns, plus the typed metadata structure that backs the channel dedup key.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class CaptureSource(str, Enum):
    """Where a capture came from."""

    VOICE = "voice"
    EMAIL = "email"


class CaptureStatus(str, Enum):
    """Lifecycle status of a capture."""

    STAGED = "staged"
    TRANSCRIBED = "transcribed"
    FAILED_TRANSCRIPTION = "failed_transcription"
    EXPORTED = "exported"
    EXPORTED_DUPLICATE = "exported_duplicate"
    EXPORTED_PLACEHOLDER = "exported_placeholder"


class ExportMode(str, Enum):
    """Outcome recorded in the export audit trail."""

    INITIAL = "initial"
    DUPLICATE_SKIP = "duplicate_skip"
    PLACEHOLDER = "placeholder"


class ErrorStage(str, Enum):
    """Pipeline stage an error log entry belongs to."""

    POLL = "poll"
    TRANSCRIBE = "transcribe"
    EXPORT = "export"
    BACKUP = "backup"
    INTEGRITY = "integrity"


# Status reached by a successful export in each mode
EXPORT_MODE_STATUS = {
    ExportMode.INITIAL: CaptureStatus.EXPORTED,
    ExportMode.DUPLICATE_SKIP: CaptureStatus.EXPORTED_DUPLICATE,
    ExportMode.PLACEHOLDER: CaptureStatus.EXPORTED_PLACEHOLDER,
}


@dataclass
class CaptureMeta:
    """
    Structured capture metadata.

    `channel` and `channel_native_id` form the upstream dedup key and are
    stored in their own columns. Everything source-specific (file paths,
    message headers, quarantine flags) lives in `extra`.
    """

    channel: str | None = None
    channel_native_id: str | None = None
    duplicate_of: str | None = None  # Capture id whose content this row repeats
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def has_source_key(self) -> bool:
        """Both halves of the channel dedup key are present."""
        return bool(self.channel) and bool(self.channel_native_id)

    def to_json(self) -> str:
        """Serialize the open extension part for the `meta_json` column."""
        payload: dict[str, Any] = dict(self.extra)
        if self.duplicate_of:
            payload["duplicate_of"] = self.duplicate_of
        return json.dumps(payload, sort_keys=True)

    @classmethod
    def from_columns(
        cls,
        channel: str | None,
        channel_native_id: str | None,
        meta_json: str | None,
    ) -> "CaptureMeta":
        """Rebuild from the stored columns."""
        extra = json.loads(meta_json) if meta_json else {}
        duplicate_of = extra.pop("duplicate_of", None)
        return cls(
            channel=channel,
            channel_native_id=channel_native_id,
            duplicate_of=duplicate_of,
            extra=extra,
        )
