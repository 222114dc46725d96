"""
Migration 001: Lookup indexes for captures and the export audit trail.

- captures(status): the export worker polls for `transcribed` rows
- captures(created_at): recovery and backfill sweeps scan by age
- exports_audit(capture_id): audit lookups per capture and cascade deletes
"""

import sqlite3

VERSION = 1
NAME = "capture_indexes"


def upgrade(conn: sqlite3.Connection) -> None:
    """Create capture and audit indexes."""
    conn.execute("CREATE INDEX IF NOT EXISTS captures_status_idx ON captures(status)")
    conn.execute("CREATE INDEX IF NOT EXISTS captures_created_at_idx ON captures(created_at)")
    conn.execute(
        "CREATE INDEX IF NOT EXISTS exports_audit_capture_idx ON exports_audit(capture_id)"
    )


def downgrade(conn: sqlite3.Connection) -> None:
    """Drop capture and audit indexes."""
    conn.execute("DROP INDEX IF EXISTS exports_audit_capture_idx")
    conn.execute("DROP INDEX IF EXISTS captures_created_at_idx")
    conn.execute("DROP INDEX IF EXISTS captures_status_idx")
