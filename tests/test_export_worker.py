"""Tests for the export worker."""

import errno
import sqlite3
from unittest.mock import patch

from capture_bridge.schemas import CaptureStatus
from capture_bridge.services import ExportWorker


class TestExportWorker:
    def test_exports_pending(self, store, writer, vault, make_transcribed):
        ids = [make_transcribed(f"note {n}") for n in range(3)]
        worker = ExportWorker(store, writer, vault)

        report = worker.run_once()

        assert report.exported == 3
        assert report.processed == 3
        assert report.failed == []
        for capture_id in ids:
            assert store.get_capture(capture_id).status is CaptureStatus.EXPORTED
            assert (vault / "inbox" / f"{capture_id}.md").exists()

    def test_limit(self, store, writer, vault, make_transcribed):
        for n in range(3):
            make_transcribed(f"note {n}")
        report = ExportWorker(store, writer, vault).run_once(limit=2)
        assert report.exported == 2
        assert store.count_by_status()["transcribed"] == 1

    def test_nothing_pending(self, store, writer, vault):
        report = ExportWorker(store, writer, vault).run_once()
        assert report.processed == 0
        assert not report.halted

    def test_counts_duplicates_and_placeholders(self, store, writer, vault, make_transcribed):
        clash = make_transcribed("clash")
        (vault / "inbox").mkdir()
        (vault / "inbox" / f"{clash}.md").write_text("other")
        make_transcribed("fine")

        report = ExportWorker(store, writer, vault).run_once()

        assert report.placeholders == 1
        assert report.exported == 1

    def test_fatal_stops_pass(self, store, writer, vault, make_transcribed):
        for n in range(3):
            make_transcribed(f"note {n}")

        with patch(
            "capture_bridge.vault.atomic_writer.os.fsync",
            side_effect=OSError(errno.ENOSPC, "No space left on device"),
        ):
            report = ExportWorker(store, writer, vault).run_once()

        assert report.halted
        assert "ENOSPC" in report.halt_reason
        assert report.processed == 0
        assert store.count_by_status()["transcribed"] == 3

        # Next pass is skipped while halted
        again = ExportWorker(store, writer, vault).run_once()
        assert again.halted
        assert store.count_by_status()["transcribed"] == 3

    def test_transient_failure_skips_capture(self, store, writer, vault, make_transcribed):
        make_transcribed("note")

        with patch(
            "capture_bridge.vault.atomic_writer.os.replace",
            side_effect=PermissionError(errno.EACCES, "Permission denied"),
        ):
            report = ExportWorker(store, writer, vault).run_once()

        assert len(report.failed) == 1
        assert not report.halted
        assert store.count_by_status()["transcribed"] == 1

    def test_ledger_full_stops_pass(self, store, writer, vault, make_transcribed):
        capture_id = make_transcribed("note")

        with patch.object(
            store,
            "record_export",
            side_effect=sqlite3.OperationalError("database or disk is full"),
        ):
            report = ExportWorker(store, writer, vault).run_once()

        assert report.halted
        assert "database or disk is full" in report.halt_reason
        assert writer.halted
        assert (vault / "inbox" / f"{capture_id}.md").exists()
        assert store.count_by_status()["transcribed"] == 1
