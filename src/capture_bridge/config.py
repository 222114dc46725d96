"""
Configuration management.

All configuration keys for the capture bridge are defined here; no other
module should invent config keys or defaults.

Key invariants:
- The ledger path and the vault root are the only required locations
- Backups default to a directory inside the vault, next to the ledger's data
- Environment variables override the YAML file, the YAML file overrides defaults
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

import yaml

from .services.retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_BACKUP_SUBDIR = Path(".capture-bridge") / ".backups"


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("Invalid configuration: " + "; ".join(errors))


@dataclass
class LedgerConfig:
    """SQLite staging ledger settings."""

    db_path: Path = field(default_factory=lambda: Path("data/ledger.sqlite"))
    # Milliseconds a writer waits on a locked database before failing
    busy_timeout_ms: int = 5000
    # WAL pages between automatic checkpoints
    wal_autocheckpoint: int = 1000


@dataclass
class VaultConfig:
    """Obsidian vault layout."""

    root: Path | None = None
    inbox_dir: str = "inbox"
    staging_dir: str = ".trash"


@dataclass
class RetryConfig:
    """Backoff settings for transient I/O failures."""

    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 64.0
    multiplier: float = 2.0
    jitter: float = 0.3

    def build_policy(self, **kwargs) -> RetryPolicy:
        """Create a RetryPolicy from these settings."""
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay_seconds,
            max_delay=self.max_delay_seconds,
            multiplier=self.multiplier,
            jitter=self.jitter,
            **kwargs,
        )


@dataclass
class IntakeConfig:
    """Capture intake settings."""

    # Re-observations of a known upstream item older than this are logged
    repoll_window_hours: int = 24

    @property
    def repoll_window(self) -> timedelta:
        return timedelta(hours=self.repoll_window_hours)


@dataclass
class RecoveryConfig:
    """Startup recovery settings."""

    stale_after_minutes: int = 10

    @property
    def stale_after(self) -> timedelta:
        return timedelta(minutes=self.stale_after_minutes)


@dataclass
class BackupConfig:
    """Ledger backup settings."""

    # Defaults to <vault>/.capture-bridge/.backups when unset
    dir: Path | None = None
    keep: int = 24


@dataclass
class Config:
    """Application configuration."""

    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    vault: VaultConfig = field(default_factory=VaultConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    intake: IntakeConfig = field(default_factory=IntakeConfig)
    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)

    @property
    def backup_dir(self) -> Path | None:
        """Resolved backup directory, or None without a vault or explicit dir."""
        if self.backup.dir is not None:
            return self.backup.dir
        if self.vault.root is not None:
            return self.vault.root / DEFAULT_BACKUP_SUBDIR
        return None

    def validate(self, require_vault: bool = False) -> list[str]:
        """Validate configuration completeness and consistency.

        Args:
            require_vault: Treat a missing vault root as an error

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        if not str(self.ledger.db_path):
            errors.append("ledger.db_path is required")
        if self.ledger.busy_timeout_ms < 0:
            errors.append("ledger.busy_timeout_ms must be >= 0")
        if self.ledger.wal_autocheckpoint < 0:
            errors.append("ledger.wal_autocheckpoint must be >= 0")

        if require_vault and self.vault.root is None:
            errors.append("vault.root is required")
        for name in ("inbox_dir", "staging_dir"):
            value = getattr(self.vault, name)
            if not value or Path(value).is_absolute() or ".." in Path(value).parts:
                errors.append(f"vault.{name} must be a relative path inside the vault")
        if self.vault.inbox_dir == self.vault.staging_dir:
            errors.append("vault.inbox_dir and vault.staging_dir must differ")

        if self.retry.max_attempts < 1:
            errors.append("retry.max_attempts must be >= 1")
        if self.retry.base_delay_seconds < 0:
            errors.append("retry.base_delay_seconds must be >= 0")
        if self.retry.max_delay_seconds < self.retry.base_delay_seconds:
            errors.append("retry.max_delay_seconds must be >= retry.base_delay_seconds")
        if self.retry.multiplier < 1:
            errors.append("retry.multiplier must be >= 1")
        if self.retry.jitter < 0:
            errors.append("retry.jitter must be >= 0")

        if self.intake.repoll_window_hours < 0:
            errors.append("intake.repoll_window_hours must be >= 0")
        if self.recovery.stale_after_minutes < 1:
            errors.append("recovery.stale_after_minutes must be >= 1")
        if self.backup.keep < 1:
            errors.append("backup.keep must be >= 1")

        return errors


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    A missing file yields defaults. Environment variables override config values:
    - CAPTURE_BRIDGE_DB (ledger database path)
    - CAPTURE_BRIDGE_VAULT (vault root)
    - CAPTURE_BRIDGE_RETRY_MAX_ATTEMPTS
    """
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    # Ledger
    ledger_data = data.get("ledger", {})
    ledger = LedgerConfig(
        db_path=Path(
            os.environ.get("CAPTURE_BRIDGE_DB", ledger_data.get("db_path", "data/ledger.sqlite"))
        ),
        busy_timeout_ms=int(ledger_data.get("busy_timeout_ms", 5000)),
        wal_autocheckpoint=int(ledger_data.get("wal_autocheckpoint", 1000)),
    )

    # Vault
    vault_data = data.get("vault", {})
    vault_root = os.environ.get("CAPTURE_BRIDGE_VAULT", vault_data.get("root"))
    vault = VaultConfig(
        root=Path(vault_root).expanduser() if vault_root else None,
        inbox_dir=vault_data.get("inbox_dir", "inbox"),
        staging_dir=vault_data.get("staging_dir", ".trash"),
    )

    # Retry
    retry_data = data.get("retry", {})
    max_attempts = retry_data.get("max_attempts", 3)
    max_attempts_env = os.environ.get("CAPTURE_BRIDGE_RETRY_MAX_ATTEMPTS", "")
    if max_attempts_env:
        try:
            max_attempts = int(max_attempts_env)
        except ValueError:
            logger.warning(
                f"Ignoring non-integer CAPTURE_BRIDGE_RETRY_MAX_ATTEMPTS={max_attempts_env!r}"
            )

    retry = RetryConfig(
        max_attempts=int(max_attempts),
        base_delay_seconds=float(retry_data.get("base_delay_seconds", 1.0)),
        max_delay_seconds=float(retry_data.get("max_delay_seconds", 64.0)),
        multiplier=float(retry_data.get("multiplier", 2.0)),
        jitter=float(retry_data.get("jitter", 0.3)),
    )

    intake_data = data.get("intake", {})
    intake = IntakeConfig(repoll_window_hours=int(intake_data.get("repoll_window_hours", 24)))

    recovery_data = data.get("recovery", {})
    recovery = RecoveryConfig(
        stale_after_minutes=int(recovery_data.get("stale_after_minutes", 10))
    )

    backup_data = data.get("backup", {})
    backup_dir = backup_data.get("dir")
    backup = BackupConfig(
        dir=Path(backup_dir).expanduser() if backup_dir else None,
        keep=int(backup_data.get("keep", 24)),
    )

    return Config(
        ledger=ledger,
        vault=vault,
        retry=retry,
        intake=intake,
        recovery=recovery,
        backup=backup,
    )


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# Capture Bridge Configuration
#
# Environment overrides:
# - CAPTURE_BRIDGE_DB                   ledger.db_path
# - CAPTURE_BRIDGE_VAULT                vault.root
# - CAPTURE_BRIDGE_RETRY_MAX_ATTEMPTS   retry.max_attempts

# Staging ledger (SQLite, WAL mode)
ledger:
  db_path: "data/ledger.sqlite"
  busy_timeout_ms: 5000                   # Wait this long on a locked database
  wal_autocheckpoint: 1000                # WAL pages between checkpoints

# Obsidian vault
vault:
  root: null                              # Required for export, e.g. "~/Obsidian/Main"
  inbox_dir: "inbox"                      # Exports land in <root>/inbox/<id>.md
  staging_dir: ".trash"                   # In-progress writes, same filesystem as inbox

# Backoff for transient I/O failures
retry:
  max_attempts: 3
  base_delay_seconds: 1.0
  max_delay_seconds: 64.0
  multiplier: 2.0
  jitter: 0.3                             # Up to +30% random delay

# Intake
intake:
  repoll_window_hours: 24                 # Re-polls older than this are logged

# Startup recovery
recovery:
  stale_after_minutes: 10                 # Open captures untouched this long are reported

# Ledger backups
backup:
  dir: null                               # Defaults to <vault>/.capture-bridge/.backups
  keep: 24                                # Newest backups retained
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
