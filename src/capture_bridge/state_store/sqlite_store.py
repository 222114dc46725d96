"""
SQLite-based staging ledger implementation.

Tables (hard cap of four):
- captures: Staged voice and email captures with their lifecycle status
- exports_audit: Append-only trail of vault export outcomes
- errors_log: Diagnostics, independent of capture lifetime
- sync_state: Key/value cursors (poller checkpoints, schema_version, export halt)
"""

import logging
import sqlite3
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from ..schemas.capture import CaptureMeta, CaptureSource, CaptureStatus, ErrorStage, ExportMode
from ..schemas.identifiers import new_capture_id, validate_capture_id
from .errors import CaptureNotFound, DuplicateContent, DuplicateSource
from .migrations.runner import SCHEMA_VERSION_KEY
from .state_machine import EXPORTED_STATES, NON_TERMINAL_STATES, assert_valid_transition

logger = logging.getLogger(__name__)

REQUIRED_TABLES = ("captures", "exports_audit", "errors_log", "sync_state")
REQUIRED_INDEXES = (
    "captures_content_hash_idx",
    "captures_channel_native_uid",
    "captures_status_idx",
    "captures_created_at_idx",
    "exports_audit_capture_idx",
    "errors_log_stage_idx",
    "errors_log_created_at_idx",
)

# Fields that may be written alongside a status change
UPDATABLE_FIELDS = frozenset({"raw_content", "content_hash", "meta"})


def utcnow_iso() -> str:
    """Current UTC time as a fixed-width, lexically sortable ISO string."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


@dataclass
class NewCapture:
    """A capture handed over by a poller, before it has a row."""

    source: CaptureSource
    raw_content: str = ""
    meta: CaptureMeta = field(default_factory=CaptureMeta)
    content_hash: str | None = None
    id: str | None = None  # Generated at insert when absent


@dataclass
class CaptureRecord:
    """A staged capture."""

    id: str
    source: CaptureSource
    raw_content: str
    content_hash: str | None
    status: CaptureStatus
    meta: CaptureMeta
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "CaptureRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            source=CaptureSource(row["source"]),
            raw_content=row["raw_content"],
            content_hash=row["content_hash"],
            status=CaptureStatus(row["status"]),
            meta=CaptureMeta.from_columns(
                row["channel"], row["channel_native_id"], row["meta_json"]
            ),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @property
    def is_duplicate(self) -> bool:
        """Row was folded onto another capture with identical content."""
        return self.meta.duplicate_of is not None


@dataclass
class ExportRecord:
    """One export attempt outcome (append-only)."""

    id: str
    capture_id: str
    vault_path: str
    hash_at_export: str | None
    exported_at: str
    mode: ExportMode
    error_flag: bool

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ExportRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            capture_id=row["capture_id"],
            vault_path=row["vault_path"],
            hash_at_export=row["hash_at_export"],
            exported_at=row["exported_at"],
            mode=ExportMode(row["mode"]),
            error_flag=bool(row["error_flag"]),
        )


@dataclass
class ErrorRecord:
    """A diagnostic entry."""

    id: str
    capture_id: str | None
    stage: ErrorStage
    message: str
    created_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ErrorRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            capture_id=row["capture_id"],
            stage=ErrorStage(row["stage"]),
            message=row["message"],
            created_at=row["created_at"],
        )


@dataclass
class SyncCursor:
    """A poller checkpoint."""

    key: str
    value: str
    updated_at: str


class LedgerStore:
    """
    SQLite-based staging ledger.

    Provides persistent tracking of:
    - Captures and their lifecycle status
    - Export audit trail
    - Error diagnostics
    - Poller sync cursors

    Enforces two independent dedup keys at the storage level: the content
    hash (unique among non-null values) and the (channel, channel_native_id)
    pair (unique where both are present).

    Every write runs in a `BEGIN IMMEDIATE` transaction behind a process-wide
    lock, so writers from the same process are serialized and multi-row
    changes commit or roll back together.
    """

    def __init__(
        self,
        db_path: Path | str,
        busy_timeout_ms: int = 5000,
        wal_autocheckpoint: int = 1000,
        run_migrations: bool = True,
    ):
        """
        Initialize the ledger.

        Args:
            db_path: Path to SQLite database file
            busy_timeout_ms: How long a connection waits on a locked database
            wal_autocheckpoint: WAL pages between automatic checkpoints
            run_migrations: Whether to run pending migrations (default True)
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.busy_timeout_ms = busy_timeout_ms
        self.wal_autocheckpoint = wal_autocheckpoint
        self._write_lock = threading.RLock()
        self._init_db()
        if run_migrations:
            self._run_migrations()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a configured connection in autocommit mode."""
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
        conn.execute("PRAGMA synchronous = NORMAL")
        conn.execute(f"PRAGMA wal_autocheckpoint = {int(self.wal_autocheckpoint)}")
        conn.execute("PRAGMA temp_store = MEMORY")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for a serialized write transaction."""
        with self._write_lock:
            conn = self._get_connection()
            try:
                conn.execute("BEGIN IMMEDIATE")
                yield conn
                conn.execute("COMMIT")
            except Exception:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            finally:
                conn.close()

    @contextmanager
    def _read(self) -> Iterator[sqlite3.Connection]:
        """Context manager for read-only access."""
        conn = self._get_connection()
        try:
            yield conn
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._write_lock:
            conn = self._get_connection()
            try:
                # Persistent for the file; must run outside a transaction
                conn.execute("PRAGMA journal_mode = WAL")
            finally:
                conn.close()

        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS captures (
                    id TEXT PRIMARY KEY,
                    source TEXT NOT NULL CHECK (source IN ('voice', 'email')),
                    raw_content TEXT NOT NULL,
                    content_hash TEXT,
                    status TEXT NOT NULL CHECK (status IN (
                        'staged', 'transcribed', 'failed_transcription',
                        'exported', 'exported_duplicate', 'exported_placeholder'
                    )),
                    channel TEXT,
                    channel_native_id TEXT,
                    meta_json TEXT NOT NULL DEFAULT '{}',  -- JSON object
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS exports_audit (
                    id TEXT PRIMARY KEY,
                    capture_id TEXT NOT NULL,
                    vault_path TEXT NOT NULL,
                    hash_at_export TEXT,
                    exported_at TEXT NOT NULL,
                    mode TEXT NOT NULL CHECK (mode IN ('initial', 'duplicate_skip', 'placeholder')),
                    error_flag INTEGER NOT NULL DEFAULT 0 CHECK (error_flag IN (0, 1)),
                    FOREIGN KEY (capture_id) REFERENCES captures(id) ON DELETE CASCADE
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS errors_log (
                    id TEXT PRIMARY KEY,
                    capture_id TEXT,
                    stage TEXT NOT NULL CHECK (stage IN (
                        'poll', 'transcribe', 'export', 'backup', 'integrity'
                    )),
                    message TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (capture_id) REFERENCES captures(id) ON DELETE SET NULL
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sync_state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """
            )

            # Dedup keys
            conn.execute(
                """
                CREATE UNIQUE INDEX IF NOT EXISTS captures_content_hash_idx
                    ON captures(content_hash)
                    WHERE content_hash IS NOT NULL
            """
            )
            conn.execute(
                """
                CREATE UNIQUE INDEX IF NOT EXISTS captures_channel_native_uid
                    ON captures(channel, channel_native_id)
                    WHERE channel IS NOT NULL AND channel_native_id IS NOT NULL
            """
            )

    def _run_migrations(self) -> None:
        """Run pending database migrations."""
        from .migrations import MigrationRunner

        with self._write_lock:
            conn = self._get_connection()
            try:
                runner = MigrationRunner(conn)
                runner.run_pending()
            finally:
                conn.close()

    @property
    def schema_version(self) -> int:
        """Highest applied migration version."""
        return int(self.read_cursor(SCHEMA_VERSION_KEY) or 0)

    # Capture methods

    def insert(self, capture: NewCapture) -> str:
        """
        Stage a new capture.

        Args:
            capture: The capture to persist; an id is generated when absent

        Returns:
            The capture id

        Raises:
            InvalidIdentifier: A caller-supplied id is not a valid ULID (nothing written)
            DuplicateSource: The (channel, channel_native_id) pair already exists
            DuplicateContent: The content hash is already held by another capture
        """
        capture_id = new_capture_id() if capture.id is None else validate_capture_id(capture.id)
        meta = capture.meta
        now = utcnow_iso()

        with self._transaction() as conn:
            if meta.has_source_key:
                existing = conn.execute(
                    "SELECT id FROM captures WHERE channel = ? AND channel_native_id = ?",
                    (meta.channel, meta.channel_native_id),
                ).fetchone()
                if existing:
                    raise DuplicateSource(meta.channel, meta.channel_native_id, existing["id"])

            if capture.content_hash:
                self._ensure_hash_free(conn, capture.content_hash)

            try:
                conn.execute(
                    """
                    INSERT INTO captures
                    (id, source, raw_content, content_hash, status, channel, channel_native_id,
                     meta_json, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                    (
                        capture_id,
                        CaptureSource(capture.source).value,
                        capture.raw_content,
                        capture.content_hash,
                        CaptureStatus.STAGED.value,
                        meta.channel if meta.has_source_key else None,
                        meta.channel_native_id if meta.has_source_key else None,
                        meta.to_json(),
                        now,
                        now,
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise self._map_integrity_error(conn, e, capture) from e

        logger.debug(f"Staged capture {capture_id} ({CaptureSource(capture.source).value})")
        return capture_id

    def _ensure_hash_free(
        self, conn: sqlite3.Connection, content_hash: str, exclude_id: str | None = None
    ) -> None:
        row = conn.execute(
            "SELECT id FROM captures WHERE content_hash = ? AND id IS NOT ?",
            (content_hash, exclude_id),
        ).fetchone()
        if row:
            raise DuplicateContent(content_hash, row["id"])

    def _map_integrity_error(
        self, conn: sqlite3.Connection, error: sqlite3.IntegrityError, capture: NewCapture
    ) -> Exception:
        """Translate a unique-index violation into the matching dedup error."""
        message = str(error)
        if "content_hash" in message and capture.content_hash:
            row = conn.execute(
                "SELECT id FROM captures WHERE content_hash = ?", (capture.content_hash,)
            ).fetchone()
            return DuplicateContent(capture.content_hash, row["id"] if row else None)
        if "channel" in message and capture.meta.has_source_key:
            row = conn.execute(
                "SELECT id FROM captures WHERE channel = ? AND channel_native_id = ?",
                (capture.meta.channel, capture.meta.channel_native_id),
            ).fetchone()
            return DuplicateSource(
                capture.meta.channel, capture.meta.channel_native_id, row["id"] if row else None
            )
        return error

    def get_capture(self, capture_id: str) -> CaptureRecord | None:
        """Get a capture by id."""
        with self._read() as conn:
            row = conn.execute("SELECT * FROM captures WHERE id = ?", (capture_id,)).fetchone()
            return CaptureRecord.from_row(row) if row else None

    def require_capture(self, capture_id: str) -> CaptureRecord:
        """Get a capture by id, raising if it does not exist."""
        capture = self.get_capture(capture_id)
        if capture is None:
            raise CaptureNotFound(capture_id)
        return capture

    def find_capture_by_source(self, channel: str, channel_native_id: str) -> CaptureRecord | None:
        """Look up a capture by its upstream identity."""
        with self._read() as conn:
            row = conn.execute(
                "SELECT * FROM captures WHERE channel = ? AND channel_native_id = ?",
                (channel, channel_native_id),
            ).fetchone()
            return CaptureRecord.from_row(row) if row else None

    def find_capture_by_hash(self, content_hash: str) -> CaptureRecord | None:
        """Look up the capture holding a content hash."""
        with self._read() as conn:
            row = conn.execute(
                "SELECT * FROM captures WHERE content_hash = ?", (content_hash,)
            ).fetchone()
            return CaptureRecord.from_row(row) if row else None

    def find_exported_by_hash(self, content_hash: str) -> tuple[str, str | None] | None:
        """
        Find the earliest exported capture with this content.

        Returns:
            (capture_id, vault_path) or None; vault_path is None when the
            capture has no audit row
        """
        with self._read() as conn:
            row = conn.execute(
                """
                SELECT c.id, ea.vault_path
                FROM captures c
                LEFT JOIN exports_audit ea ON ea.capture_id = c.id
                WHERE c.content_hash = ?
                  AND c.status IN ('exported', 'exported_duplicate')
                ORDER BY c.created_at ASC, ea.exported_at ASC
                LIMIT 1
            """,
                (content_hash,),
            ).fetchone()
            return (row["id"], row["vault_path"]) if row else None

    def update_status(
        self,
        capture_id: str,
        new_status: CaptureStatus | str,
        fields: Mapping[str, Any] | None = None,
    ) -> CaptureRecord:
        """
        Move a capture to a new status, optionally finalizing its content.

        `raw_content` and `content_hash` can only be written on the move out
        of `staged`; `meta` may be written with any legal transition.

        Args:
            capture_id: Capture to update
            new_status: Target status
            fields: Optional subset of raw_content, content_hash, meta

        Returns:
            The updated capture

        Raises:
            CaptureNotFound: Unknown capture id
            InvalidTransition: The state machine forbids the move
            DuplicateContent: content_hash is already held by another capture
            ValueError: Unknown field, or content change outside of staged
        """
        new_status = CaptureStatus(new_status)
        fields = dict(fields or {})
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update capture fields: {sorted(unknown)}")

        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM captures WHERE id = ?", (capture_id,)).fetchone()
            if row is None:
                raise CaptureNotFound(capture_id)

            current = CaptureStatus(row["status"])
            assert_valid_transition(current, new_status)

            if ("raw_content" in fields or "content_hash" in fields) and (
                current is not CaptureStatus.STAGED
            ):
                raise ValueError(
                    f"Content of capture {capture_id} is final once it leaves staged"
                )

            updates = ["status = ?", "updated_at = ?"]
            params: list[Any] = [new_status.value, utcnow_iso()]

            if "raw_content" in fields:
                updates.append("raw_content = ?")
                params.append(fields["raw_content"])

            if "content_hash" in fields:
                content_hash = fields["content_hash"]
                if content_hash:
                    self._ensure_hash_free(conn, content_hash, exclude_id=capture_id)
                updates.append("content_hash = ?")
                params.append(content_hash)

            if "meta" in fields:
                updates.append("meta_json = ?")
                params.append(fields["meta"].to_json())

            params.append(capture_id)
            conn.execute(f"UPDATE captures SET {', '.join(updates)} WHERE id = ?", params)

            updated = conn.execute("SELECT * FROM captures WHERE id = ?", (capture_id,)).fetchone()

        logger.debug(f"Capture {capture_id}: {current.value} -> {new_status.value}")
        return CaptureRecord.from_row(updated)

    def update_meta(self, capture_id: str, meta: CaptureMeta) -> None:
        """
        Replace the open metadata of a capture without a status change.

        The channel dedup key is immutable; only `extra` and `duplicate_of`
        are written.
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE captures SET meta_json = ?, updated_at = ? WHERE id = ?",
                (meta.to_json(), utcnow_iso(), capture_id),
            )
            if cursor.rowcount == 0:
                raise CaptureNotFound(capture_id)

    def delete_capture(self, capture_id: str) -> bool:
        """
        Hard-delete a capture (maintenance only).

        Cascades to its export audit rows and detaches its error log rows.

        Returns:
            True if a row was deleted
        """
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM captures WHERE id = ?", (capture_id,))
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Deleted capture {capture_id}")
        return deleted

    # Capture queries

    def list_captures_by_status(
        self, status: CaptureStatus | str, limit: int | None = None
    ) -> list[CaptureRecord]:
        """List captures in a status, oldest first."""
        query = "SELECT * FROM captures WHERE status = ? ORDER BY created_at ASC, id ASC"
        params: list[Any] = [CaptureStatus(status).value]
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self._read() as conn:
            rows = conn.execute(query, params).fetchall()
            return [CaptureRecord.from_row(row) for row in rows]

    def list_captures_created_between(
        self,
        since: str | None = None,
        until: str | None = None,
        limit: int | None = None,
    ) -> list[CaptureRecord]:
        """
        List captures by creation time, oldest first.

        Args:
            since: Inclusive lower bound (ISO timestamp)
            until: Exclusive upper bound (ISO timestamp)
            limit: Maximum rows
        """
        conditions = []
        params: list[Any] = []
        if since is not None:
            conditions.append("created_at >= ?")
            params.append(since)
        if until is not None:
            conditions.append("created_at < ?")
            params.append(until)

        query = "SELECT * FROM captures"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY created_at ASC, id ASC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self._read() as conn:
            rows = conn.execute(query, params).fetchall()
            return [CaptureRecord.from_row(row) for row in rows]

    def list_recoverable_captures(self) -> list[CaptureRecord]:
        """List captures that still have work ahead of them, oldest first."""
        statuses = sorted(s.value for s in NON_TERMINAL_STATES)
        placeholders = ", ".join("?" for _ in statuses)
        with self._read() as conn:
            rows = conn.execute(
                f"SELECT * FROM captures WHERE status IN ({placeholders}) "
                "ORDER BY created_at ASC, id ASC",
                statuses,
            ).fetchall()
            return [CaptureRecord.from_row(row) for row in rows]

    def count_by_status(self) -> dict[str, int]:
        """Capture counts per status (every status present, zero when empty)."""
        counts = {status.value: 0 for status in CaptureStatus}
        with self._read() as conn:
            for row in conn.execute("SELECT status, COUNT(*) AS n FROM captures GROUP BY status"):
                counts[row["status"]] = row["n"]
        return counts

    # Export audit methods

    def record_export(
        self,
        capture_id: str,
        vault_path: str,
        mode: ExportMode | str,
        hash_at_export: str | None = None,
        error_flag: bool = False,
        new_status: CaptureStatus | str | None = None,
    ) -> ExportRecord:
        """
        Append an export audit row, optionally moving the capture's status.

        Both writes share one transaction: either the audit row and the
        status change persist together or neither does.

        Raises:
            CaptureNotFound: Unknown capture id
            InvalidTransition: new_status is not reachable
        """
        mode = ExportMode(mode)
        record = ExportRecord(
            id=new_capture_id(),
            capture_id=capture_id,
            vault_path=vault_path,
            hash_at_export=hash_at_export,
            exported_at=utcnow_iso(),
            mode=mode,
            error_flag=error_flag,
        )

        with self._transaction() as conn:
            row = conn.execute("SELECT status FROM captures WHERE id = ?", (capture_id,)).fetchone()
            if row is None:
                raise CaptureNotFound(capture_id)

            if new_status is not None:
                new_status = CaptureStatus(new_status)
                assert_valid_transition(row["status"], new_status)
                conn.execute(
                    "UPDATE captures SET status = ?, updated_at = ? WHERE id = ?",
                    (new_status.value, record.exported_at, capture_id),
                )

            conn.execute(
                """
                INSERT INTO exports_audit
                (id, capture_id, vault_path, hash_at_export, exported_at, mode, error_flag)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    record.id,
                    record.capture_id,
                    record.vault_path,
                    record.hash_at_export,
                    record.exported_at,
                    record.mode.value,
                    1 if record.error_flag else 0,
                ),
            )

        logger.debug(f"Recorded {mode.value} export of {capture_id} -> {vault_path}")
        return record

    def list_exports(self, capture_id: str | None = None) -> list[ExportRecord]:
        """List export audit rows, oldest first."""
        with self._read() as conn:
            if capture_id is None:
                rows = conn.execute(
                    "SELECT * FROM exports_audit ORDER BY exported_at ASC, id ASC"
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM exports_audit WHERE capture_id = ? "
                    "ORDER BY exported_at ASC, id ASC",
                    (capture_id,),
                ).fetchall()
            return [ExportRecord.from_row(row) for row in rows]

    def placeholder_export_ratio(self, day: date | str | None = None) -> float:
        """
        Percentage of a UTC day's exports that were placeholders.

        Args:
            day: Date or YYYY-MM-DD string (default: today, UTC)

        Returns:
            0.0 to 100.0; 0.0 when there were no exports
        """
        if day is None:
            day = datetime.now(timezone.utc).date()
        day_str = day.isoformat() if isinstance(day, date) else day

        with self._read() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total,
                    SUM(CASE WHEN mode = 'placeholder' THEN 1 ELSE 0 END) AS placeholders
                FROM exports_audit
                WHERE substr(exported_at, 1, 10) = ?
            """,
                (day_str,),
            ).fetchone()

        total = row["total"] or 0
        if total == 0:
            return 0.0
        return (row["placeholders"] or 0) / total * 100

    # Error log methods

    def record_error(
        self,
        stage: ErrorStage | str,
        message: str,
        capture_id: str | None = None,
    ) -> ErrorRecord:
        """
        Append a diagnostic entry.

        A capture id that no longer exists is stored as absent rather than
        failing the write.
        """
        record = ErrorRecord(
            id=new_capture_id(),
            capture_id=capture_id,
            stage=ErrorStage(stage),
            message=message,
            created_at=utcnow_iso(),
        )

        with self._transaction() as conn:
            if capture_id is not None:
                exists = conn.execute(
                    "SELECT 1 FROM captures WHERE id = ?", (capture_id,)
                ).fetchone()
                if not exists:
                    logger.debug(f"Error log entry references unknown capture {capture_id}")
                    record.capture_id = None

            conn.execute(
                """
                INSERT INTO errors_log (id, capture_id, stage, message, created_at)
                VALUES (?, ?, ?, ?, ?)
            """,
                (
                    record.id,
                    record.capture_id,
                    record.stage.value,
                    record.message,
                    record.created_at,
                ),
            )

        return record

    def list_errors(
        self,
        stage: ErrorStage | str | None = None,
        capture_id: str | None = None,
        limit: int | None = None,
    ) -> list[ErrorRecord]:
        """List error log entries, newest first."""
        conditions = []
        params: list[Any] = []
        if stage is not None:
            conditions.append("stage = ?")
            params.append(ErrorStage(stage).value)
        if capture_id is not None:
            conditions.append("capture_id = ?")
            params.append(capture_id)

        query = "SELECT * FROM errors_log"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY created_at DESC, id DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self._read() as conn:
            rows = conn.execute(query, params).fetchall()
            return [ErrorRecord.from_row(row) for row in rows]

    # Sync cursor methods

    def read_cursor(self, key: str) -> str | None:
        """Read a cursor value."""
        cursor = self.get_cursor(key)
        return cursor.value if cursor else None

    def get_cursor(self, key: str) -> SyncCursor | None:
        """Read a cursor with its timestamp."""
        with self._read() as conn:
            row = conn.execute("SELECT * FROM sync_state WHERE key = ?", (key,)).fetchone()
            return SyncCursor(row["key"], row["value"], row["updated_at"]) if row else None

    def write_cursor(self, key: str, value: str) -> None:
        """Overwrite a cursor in place."""
        if key == SCHEMA_VERSION_KEY:
            raise ValueError(f"{SCHEMA_VERSION_KEY} is managed by the migration runner")

        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO sync_state (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
            """,
                (key, value, utcnow_iso()),
            )

    def delete_cursor(self, key: str) -> bool:
        """Remove a cursor. Returns False if it did not exist."""
        if key == SCHEMA_VERSION_KEY:
            raise ValueError(f"{SCHEMA_VERSION_KEY} is managed by the migration runner")

        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM sync_state WHERE key = ?", (key,))
            return cursor.rowcount > 0

    # Health checks

    def verify_schema(self) -> dict[str, Any]:
        """
        Check that all required tables and indexes exist.

        Returns:
            Dict with tables, indexes, missing and valid
        """
        with self._read() as conn:
            tables = [
                row["name"]
                for row in conn.execute(
                    "SELECT name FROM sqlite_master WHERE type = 'table' "
                    "AND name NOT LIKE 'sqlite_%'"
                )
            ]
            indexes = [
                row["name"]
                for row in conn.execute(
                    "SELECT name FROM sqlite_master WHERE type = 'index' "
                    "AND name NOT LIKE 'sqlite_%'"
                )
            ]

        missing = [t for t in REQUIRED_TABLES if t not in tables]
        missing += [i for i in REQUIRED_INDEXES if i not in indexes]
        return {
            "tables": tables,
            "indexes": indexes,
            "missing": missing,
            "valid": not missing,
        }

    def verify_pragmas(self) -> list[str]:
        """Report connection settings that differ from the durability profile."""
        issues: list[str] = []
        with self._read() as conn:
            journal_mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
            if str(journal_mode).lower() != "wal":
                issues.append(f"journal_mode is '{journal_mode}' but expected 'wal'")

            synchronous = conn.execute("PRAGMA synchronous").fetchone()[0]
            if synchronous != 1:
                issues.append(f"synchronous is {synchronous} but expected 1 (NORMAL)")

            foreign_keys = conn.execute("PRAGMA foreign_keys").fetchone()[0]
            if foreign_keys != 1:
                issues.append(f"foreign_keys is {foreign_keys} but expected 1 (ON)")

            busy_timeout = conn.execute("PRAGMA busy_timeout").fetchone()[0]
            if busy_timeout != self.busy_timeout_ms:
                issues.append(f"busy_timeout is {busy_timeout} but expected {self.busy_timeout_ms}")

        return issues

    def backup_to(self, dest_path: Path | str) -> None:
        """
        Copy the live ledger with the SQLite online backup API.

        The WAL is checkpointed first so the copy does not lag behind it.
        """
        dest_path = Path(dest_path)
        dest_path.parent.mkdir(parents=True, exist_ok=True)

        with self._write_lock:
            conn = self._get_connection()
            try:
                conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
                dest = sqlite3.connect(str(dest_path))
                try:
                    conn.backup(dest)
                    # Backups are single self-contained files
                    dest.execute("PRAGMA journal_mode = DELETE")
                finally:
                    dest.close()
            finally:
                conn.close()

    def check_integrity(self) -> list[str]:
        """
        Run SQLite integrity and foreign key checks.

        Each problem found is also recorded at the `integrity` stage.

        Returns:
            List of problems (empty when healthy)
        """
        problems: list[str] = []
        with self._read() as conn:
            for row in conn.execute("PRAGMA integrity_check"):
                if row[0] != "ok":
                    problems.append(f"integrity_check: {row[0]}")
            for row in conn.execute("PRAGMA foreign_key_check"):
                problems.append(f"foreign_key_check: {row[0]} rowid={row[1]} -> {row[2]}")

        for problem in problems:
            logger.error(f"Ledger integrity problem: {problem}")
            self.record_error(ErrorStage.INTEGRITY, problem)

        return problems


def is_exported(status: CaptureStatus | str) -> bool:
    """Check if a status is one of the export outcomes."""
    return CaptureStatus(status) in EXPORTED_STATES
