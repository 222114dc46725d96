"""Tests for configuration loading."""

from datetime import timedelta
from pathlib import Path

import pytest

from capture_bridge.config import (
    Config,
    ConfigValidationError,
    create_default_config,
    load_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "CAPTURE_BRIDGE_DB",
        "CAPTURE_BRIDGE_VAULT",
        "CAPTURE_BRIDGE_RETRY_MAX_ATTEMPTS",
    ):
        monkeypatch.delenv(name, raising=False)


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "missing.yaml")

        assert config.ledger.db_path == Path("data/ledger.sqlite")
        assert config.ledger.busy_timeout_ms == 5000
        assert config.vault.root is None
        assert config.vault.inbox_dir == "inbox"
        assert config.vault.staging_dir == ".trash"
        assert config.retry.max_attempts == 3
        assert config.intake.repoll_window == timedelta(hours=24)
        assert config.recovery.stale_after == timedelta(minutes=10)
        assert config.backup.keep == 24
        assert config.validate() == []

    def test_default_template_round_trips(self, tmp_path):
        path = tmp_path / "config" / "config.yaml"
        create_default_config(path)

        config = load_config(path)

        assert config == Config()

    def test_yaml_values(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            """
ledger:
  db_path: /var/lib/capture/ledger.sqlite
vault:
  root: /home/me/vault
retry:
  max_attempts: 5
  jitter: 0.1
backup:
  keep: 6
"""
        )

        config = load_config(path)

        assert config.ledger.db_path == Path("/var/lib/capture/ledger.sqlite")
        assert config.vault.root == Path("/home/me/vault")
        assert config.retry.max_attempts == 5
        assert config.retry.jitter == 0.1
        assert config.backup.keep == 6

    def test_env_overrides(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("vault:\n  root: /from/yaml\n")
        monkeypatch.setenv("CAPTURE_BRIDGE_DB", str(tmp_path / "env.sqlite"))
        monkeypatch.setenv("CAPTURE_BRIDGE_VAULT", "/from/env")
        monkeypatch.setenv("CAPTURE_BRIDGE_RETRY_MAX_ATTEMPTS", "7")

        config = load_config(path)

        assert config.ledger.db_path == tmp_path / "env.sqlite"
        assert config.vault.root == Path("/from/env")
        assert config.retry.max_attempts == 7

    def test_bad_env_integer_ignored(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CAPTURE_BRIDGE_RETRY_MAX_ATTEMPTS", "lots")
        assert load_config(tmp_path / "missing.yaml").retry.max_attempts == 3

    def test_backup_dir_defaults_into_vault(self, tmp_path):
        config = Config()
        assert config.backup_dir is None

        config.vault.root = tmp_path / "vault"
        assert config.backup_dir == tmp_path / "vault" / ".capture-bridge" / ".backups"

    def test_build_policy(self):
        policy = Config().retry.build_policy(sleep=lambda _: None)
        assert policy.max_attempts == 3
        assert policy.max_delay == 64.0


class TestValidate:
    def test_require_vault(self):
        assert "vault.root is required" in Config().validate(require_vault=True)

    def test_invalid_values(self):
        config = Config()
        config.retry.max_attempts = 0
        config.vault.staging_dir = "../outside"
        config.backup.keep = 0

        errors = config.validate()

        assert "retry.max_attempts must be >= 1" in errors
        assert "vault.staging_dir must be a relative path inside the vault" in errors
        assert "backup.keep must be >= 1" in errors

    def test_same_inbox_and_staging(self):
        config = Config()
        config.vault.staging_dir = "inbox"
        assert "vault.inbox_dir and vault.staging_dir must differ" in config.validate()

    def test_validation_error_message(self):
        error = ConfigValidationError(["a", "b"])
        assert error.errors == ["a", "b"]
        assert "a; b" in str(error)
