"""Tests for the migration runner."""

import pytest

from capture_bridge.state_store import LedgerStore
from capture_bridge.state_store.migrations import MigrationRunner, get_all_migrations


class TestMigrationRunner:
    @pytest.fixture
    def conn(self, temp_db):
        store = LedgerStore(temp_db, run_migrations=False)
        conn = store._get_connection()
        yield conn
        conn.close()

    def index_names(self, conn) -> set[str]:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'index'").fetchall()
        return {row[0] for row in rows}

    def test_migrations_are_ordered(self):
        versions = [m.version for m in get_all_migrations()]
        assert versions == sorted(versions)
        assert versions[0] == 1

    def test_run_pending(self, conn):
        runner = MigrationRunner(conn)
        applied = runner.run_pending()

        assert applied == [m.version for m in get_all_migrations()]
        assert runner.get_current_version() == applied[-1]
        assert "captures_status_idx" in self.index_names(conn)
        assert "errors_log_stage_idx" in self.index_names(conn)

    def test_run_pending_twice(self, conn):
        runner = MigrationRunner(conn)
        runner.run_pending()
        assert runner.run_pending() == []

    def test_migrate_down_and_up(self, conn):
        runner = MigrationRunner(conn)
        runner.run_pending()

        runner.migrate_to(1)
        assert runner.get_current_version() == 1
        assert "errors_log_stage_idx" not in self.index_names(conn)
        assert "captures_status_idx" in self.index_names(conn)

        runner.migrate_to(2)
        assert runner.get_current_version() == 2
        assert "errors_log_stage_idx" in self.index_names(conn)
