"""
Migration 002: Indexes for the error log.

Operators filter diagnostics by stage and by recency; `capture_id` is indexed
so that ON DELETE SET NULL does not scan the whole table.
"""

import sqlite3

VERSION = 2
NAME = "errors_log_indexes"


def upgrade(conn: sqlite3.Connection) -> None:
    """Create error log indexes."""
    conn.execute("CREATE INDEX IF NOT EXISTS errors_log_stage_idx ON errors_log(stage)")
    conn.execute("CREATE INDEX IF NOT EXISTS errors_log_created_at_idx ON errors_log(created_at)")
    conn.execute("CREATE INDEX IF NOT EXISTS errors_log_capture_idx ON errors_log(capture_id)")


def downgrade(conn: sqlite3.Connection) -> None:
    """Drop error log indexes."""
    conn.execute("DROP INDEX IF EXISTS errors_log_capture_idx")
    conn.execute("DROP INDEX IF EXISTS errors_log_created_at_idx")
    conn.execute("DROP INDEX IF EXISTS errors_log_stage_idx")
