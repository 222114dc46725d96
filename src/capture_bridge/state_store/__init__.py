"""
Staging Ledger (SQLite-based).

Durable store for everything between intake and vault export:
- Captures and their lifecycle status
- Export audit trail
- Error diagnostics
- Poller sync cursors

Enforces uniqueness on content_hash and on (channel, channel_native_id).
"""

from .errors import (
    CaptureNotFound,
    DuplicateContent,
    DuplicateSource,
    InvalidTransition,
    LedgerError,
)
from .sqlite_store import (
    CaptureRecord,
    ErrorRecord,
    ExportRecord,
    LedgerStore,
    NewCapture,
    SyncCursor,
    utcnow_iso,
)
from .state_machine import (
    EXPORTED_STATES,
    TERMINAL_STATES,
    assert_valid_transition,
    is_terminal,
    validate_transition,
)

__all__ = [
    "LedgerStore",
    "NewCapture",
    "CaptureRecord",
    "ExportRecord",
    "ErrorRecord",
    "SyncCursor",
    "utcnow_iso",
    # Errors
    "LedgerError",
    "DuplicateContent",
    "DuplicateSource",
    "CaptureNotFound",
    "InvalidTransition",
    # State machine
    "TERMINAL_STATES",
    "EXPORTED_STATES",
    "assert_valid_transition",
    "is_terminal",
    "validate_transition",
]
