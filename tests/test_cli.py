"""Tests for CLI commands."""

import pytest

from capture_bridge.runner.main import create_cli, main
from capture_bridge.schemas import CaptureMeta, CaptureSource, compute_content_hash
from capture_bridge.services import HALT_CURSOR_KEY
from capture_bridge.state_store import LedgerStore, NewCapture


class TestCLICommandRegistry:
    """Tests for CLI command registration."""

    def test_all_commands_registered(self):
        parser = create_cli()
        for command in ["init", "status", "export", "resume", "recover", "backup", "errors"]:
            assert parser.parse_args([command]).command == command

    def test_export_limit(self):
        args = create_cli().parse_args(["export", "--limit", "5"])
        assert args.limit == 5

    def test_errors_stage_choices(self):
        args = create_cli().parse_args(["errors", "--stage", "export"])
        assert args.stage == "export"
        with pytest.raises(SystemExit):
            create_cli().parse_args(["errors", "--stage", "parsing"])

    def test_no_command(self):
        assert main([]) == 1


class TestCLICommands:
    @pytest.fixture
    def config_path(self, tmp_path, vault, monkeypatch):
        monkeypatch.delenv("CAPTURE_BRIDGE_RETRY_MAX_ATTEMPTS", raising=False)
        monkeypatch.setenv("CAPTURE_BRIDGE_DB", str(tmp_path / "ledger.sqlite"))
        monkeypatch.setenv("CAPTURE_BRIDGE_VAULT", str(vault))
        return tmp_path / "config.yaml"

    def test_init(self, config_path, tmp_path):
        assert main(["-c", str(config_path), "init"]) == 0
        assert config_path.exists()
        assert (tmp_path / "ledger.sqlite").exists()

    def test_status(self, config_path, capsys):
        assert main(["-c", str(config_path), "status"]) == 0
        assert "Ledger Status" in capsys.readouterr().out

    def test_export(self, config_path, tmp_path, vault):
        store = LedgerStore(tmp_path / "ledger.sqlite")
        capture_id = store.insert(
            NewCapture(
                source=CaptureSource.VOICE,
                meta=CaptureMeta(channel="voice_memos", channel_native_id="m.m4a"),
            )
        )
        store.update_status(
            capture_id, "transcribed", {"raw_content": "hi", "content_hash": compute_content_hash("hi")}
        )

        assert main(["-c", str(config_path), "export"]) == 0
        assert (vault / "inbox" / f"{capture_id}.md").exists()

    def test_export_requires_vault(self, config_path, monkeypatch, capsys):
        monkeypatch.delenv("CAPTURE_BRIDGE_VAULT")
        assert main(["-c", str(config_path), "export"]) == 1
        assert "vault.root is required" in capsys.readouterr().out

    def test_recover(self, config_path):
        assert main(["-c", str(config_path), "recover"]) == 0

    def test_backup(self, config_path, vault):
        assert main(["-c", str(config_path), "backup"]) == 0
        backups = list((vault / ".capture-bridge" / ".backups").glob("ledger-*.sqlite"))
        assert len(backups) == 1

    def test_errors(self, config_path, tmp_path, capsys):
        store = LedgerStore(tmp_path / "ledger.sqlite")
        store.record_error("poll", "gmail returned 503")

        assert main(["-c", str(config_path), "errors"]) == 0
        assert "gmail returned 503" in capsys.readouterr().out

    def test_halt_survives_restart_until_resume(self, config_path, tmp_path, vault, capsys):
        store = LedgerStore(tmp_path / "ledger.sqlite")
        store.write_cursor(HALT_CURSOR_KEY, "ENOSPC while exporting 01HZX5K3M8Q9R2T4V6W8Y0ABCD")

        assert main(["-c", str(config_path), "status"]) == 1
        assert "Export halted: ENOSPC" in capsys.readouterr().out
        assert main(["-c", str(config_path), "export"]) == 2

        assert main(["-c", str(config_path), "resume"]) == 0
        assert "Export resumed" in capsys.readouterr().out
        assert store.read_cursor(HALT_CURSOR_KEY) is None
        assert main(["-c", str(config_path), "export"]) == 0

    def test_resume_when_not_halted(self, config_path, capsys):
        assert main(["-c", str(config_path), "resume"]) == 0
        assert "not halted" in capsys.readouterr().out
