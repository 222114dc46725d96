"""
Shared vocabulary for the staging ledger.

These schemas are the only models used across modules: the capture enums,
the typed metadata, the identifier rules and the content fingerprint.
"""

from .capture import (
    EXPORT_MODE_STATUS,
    CaptureMeta,
    CaptureSource,
    CaptureStatus,
    ErrorStage,
    ExportMode,
)
from .content_hash import (
    HASH_LENGTH,
    compute_content_hash,
    compute_email_hash,
    compute_sha256,
    is_content_hash,
    normalize_text,
)
from .identifiers import (
    EXCLUDED_CHARACTERS,
    ULID_ALPHABET,
    ULID_LENGTH,
    InvalidIdentifier,
    is_valid_capture_id,
    new_capture_id,
    timestamp_from_capture_id,
    validate_capture_id,
)

__all__ = [
    # Capture vocabulary
    "CaptureMeta",
    "CaptureSource",
    "CaptureStatus",
    "ErrorStage",
    "ExportMode",
    "EXPORT_MODE_STATUS",
    # Identifiers
    "InvalidIdentifier",
    "new_capture_id",
    "validate_capture_id",
    "is_valid_capture_id",
    "timestamp_from_capture_id",
    "ULID_ALPHABET",
    "ULID_LENGTH",
    "EXCLUDED_CHARACTERS",
    # Content hash
    "HASH_LENGTH",
    "normalize_text",
    "compute_sha256",
    "compute_content_hash",
    "compute_email_hash",
    "is_content_hash",
]
