"""Pipeline services: dedup intake, atomic export, retry, recovery and backup."""

from capture_bridge.services.backup import BackupError, LedgerBackup
from capture_bridge.services.dedup import DeduplicationEngine, IntakeDecision, IntakeResult
from capture_bridge.services.export_worker import ExportWorker, WorkerReport
from capture_bridge.services.exporter import (
    HALT_CURSOR_KEY,
    AtomicExportWriter,
    ExportError,
    ExportHaltedError,
    ExportNotEligible,
    ExportResult,
    FatalExportError,
    IntegrityViolation,
    TransientExportError,
)
from capture_bridge.services.recovery import RecoveryReport, RecoverySweep
from capture_bridge.services.retry import (
    AttemptOutcome,
    FailureClass,
    RetryPolicy,
    classify_error,
)

__all__ = [
    "HALT_CURSOR_KEY",
    "AtomicExportWriter",
    "AttemptOutcome",
    "BackupError",
    "DeduplicationEngine",
    "ExportError",
    "ExportHaltedError",
    "ExportNotEligible",
    "ExportResult",
    "ExportWorker",
    "FailureClass",
    "FatalExportError",
    "IntakeDecision",
    "IntakeResult",
    "IntegrityViolation",
    "LedgerBackup",
    "RecoveryReport",
    "RecoverySweep",
    "RetryPolicy",
    "TransientExportError",
    "WorkerReport",
    "classify_error",
]
