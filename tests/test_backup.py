"""Tests for ledger backups."""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from capture_bridge.schemas import ErrorStage
from capture_bridge.services import BackupError, LedgerBackup
from capture_bridge.services.backup import backup_filename


class TestLedgerBackup:
    @pytest.fixture
    def backups(self, store, tmp_path) -> LedgerBackup:
        return LedgerBackup(store, tmp_path / "backups", keep=3)

    def test_filename(self):
        moment = datetime(2026, 3, 7, 14, 59, tzinfo=timezone.utc)
        assert backup_filename(moment) == "ledger-20260307-14.sqlite"

    def test_create_and_verify(self, store, backups, make_transcribed):
        capture_id = make_transcribed("note")

        result = backups.create()

        assert result.path.exists()
        assert result.size_bytes > 0
        assert backups.verify(result.path)

        conn = sqlite3.connect(result.path)
        try:
            row = conn.execute("SELECT id FROM captures").fetchone()
        finally:
            conn.close()
        assert row[0] == capture_id

    def test_same_hour_replaces(self, backups):
        moment = datetime(2026, 3, 7, 14, 0, tzinfo=timezone.utc)
        backups.create(now=moment)
        backups.create(now=moment + timedelta(minutes=30))
        assert len(backups.list_backups()) == 1

    def test_verify_corrupt_file(self, store, backups, tmp_path):
        corrupt = tmp_path / "backups" / "ledger-20260101-00.sqlite"
        corrupt.parent.mkdir(parents=True)
        corrupt.write_bytes(b"this is not a database" * 100)

        assert backups.verify(corrupt) is False
        assert len(store.list_errors(stage=ErrorStage.BACKUP)) == 1

    def test_verify_missing_file(self, store, backups, tmp_path):
        assert backups.verify(tmp_path / "nope.sqlite") is False
        assert len(store.list_errors(stage=ErrorStage.BACKUP)) == 1

    def test_prune_keeps_newest(self, backups):
        start = datetime(2026, 3, 7, 0, 0, tzinfo=timezone.utc)
        for hour in range(5):
            backups.create(now=start + timedelta(hours=hour))

        removed = backups.prune()

        assert [p.name for p in removed] == ["ledger-20260307-01.sqlite", "ledger-20260307-00.sqlite"]
        assert [p.name for p in backups.list_backups()] == [
            "ledger-20260307-04.sqlite",
            "ledger-20260307-03.sqlite",
            "ledger-20260307-02.sqlite",
        ]

    def test_create_failure_recorded(self, store, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file where the backup directory should be")
        backups = LedgerBackup(store, blocker / "backups")

        with pytest.raises(BackupError):
            backups.create()
        assert len(store.list_errors(stage=ErrorStage.BACKUP)) == 1
