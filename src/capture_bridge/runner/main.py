"""
CLI main entry point.
"""

import argparse
import logging
import sys
from pathlib import Path

import yaml

from ..config import Config, ConfigValidationError, create_default_config, load_config
from ..schemas.capture import ErrorStage
from ..services import (
    HALT_CURSOR_KEY,
    AtomicExportWriter,
    BackupError,
    ExportWorker,
    LedgerBackup,
    RecoverySweep,
)
from ..state_store import LedgerStore

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="capture-bridge",
        description="Stage voice and email captures and export them into an Obsidian vault",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("init", help="Write a default config (if missing) and create the ledger")
    subparsers.add_parser("status", help="Show ledger status and health")

    export_parser = subparsers.add_parser("export", help="Export transcribed captures to the vault")
    export_parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum captures to export in this pass",
    )

    subparsers.add_parser("resume", help="Clear an export halt after fixing its cause")
    subparsers.add_parser("recover", help="Run the startup recovery sweep")

    backup_parser = subparsers.add_parser("backup", help="Back up the ledger")
    backup_parser.add_argument(
        "--no-verify",
        action="store_true",
        help="Skip the integrity check of the new backup",
    )
    backup_parser.add_argument(
        "--no-prune",
        action="store_true",
        help="Keep old backups beyond the retention count",
    )

    errors_parser = subparsers.add_parser("errors", help="Show recent error log entries")
    errors_parser.add_argument(
        "--stage",
        choices=[stage.value for stage in ErrorStage],
        help="Only show entries from this stage",
    )
    errors_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Maximum entries to show (default: 20)",
    )

    return parser


def open_store(config: Config) -> LedgerStore:
    """Open the ledger described by the config."""
    return LedgerStore(
        config.ledger.db_path,
        busy_timeout_ms=config.ledger.busy_timeout_ms,
        wal_autocheckpoint=config.ledger.wal_autocheckpoint,
    )


def cmd_init(config: Config, config_path: Path) -> int:
    """Create config file and ledger."""
    if config_path.exists():
        print(f"Config already exists: {config_path}")
    else:
        create_default_config(config_path)
        print(f"✓ Wrote default config to {config_path}")

    store = open_store(config)
    print(f"✓ Ledger ready at {store.db_path} (schema version {store.schema_version})")
    return 0


def cmd_status(config: Config) -> int:
    """Show ledger status."""
    store = open_store(config)
    counts = store.count_by_status()
    schema = store.verify_schema()
    pragma_issues = store.verify_pragmas()

    print("\n📊 Ledger Status")
    print("=" * 40)
    for status, count in counts.items():
        print(f"  {status + ':':<24}{count}")
    print(f"  {'placeholder ratio:':<24}{store.placeholder_export_ratio():.1f}% (today)")
    print(f"  {'schema version:':<24}{store.schema_version}")
    print()

    halt_reason = store.read_cursor(HALT_CURSOR_KEY)
    if halt_reason:
        print(f"❌ Export halted: {halt_reason}")
        print("   Run `capture-bridge resume` once the cause is fixed")

    if not schema["valid"]:
        print(f"❌ Missing schema objects: {', '.join(schema['missing'])}")
    for issue in pragma_issues:
        print(f"⚠️  {issue}")

    return 0 if schema["valid"] and not pragma_issues and not halt_reason else 1


def cmd_export(config: Config, limit: int | None) -> int:
    """Run one export pass."""
    store = open_store(config)
    writer = AtomicExportWriter(
        store,
        retry_policy=config.retry.build_policy(),
        inbox_dir=config.vault.inbox_dir,
        staging_dir=config.vault.staging_dir,
    )
    worker = ExportWorker(store, writer, config.vault.root)
    report = worker.run_once(limit=limit)

    print(
        f"✓ Exported {report.exported}, duplicates {report.duplicates}, "
        f"placeholders {report.placeholders}, failed {len(report.failed)}"
    )
    if report.halted:
        print(f"❌ Export halted: {report.halt_reason}")
        print("   Run `capture-bridge resume` once the cause is fixed")
        return 2
    return 1 if report.failed else 0


def cmd_resume(config: Config) -> int:
    """Clear a persisted export halt."""
    store = open_store(config)
    writer = AtomicExportWriter(store)
    if not writer.halted:
        print("Export writer is not halted")
        return 0

    reason = writer.halt_reason
    writer.clear_halt()
    print(f"✓ Export resumed (was halted: {reason})")
    return 0


def cmd_recover(config: Config) -> int:
    """Run the recovery sweep."""
    store = open_store(config)
    sweep = RecoverySweep(
        store,
        vault_root=config.vault.root,
        staging_dir=config.vault.staging_dir,
        stale_after=config.recovery.stale_after,
    )
    report = sweep.run()

    print(f"🔎 {report.found} open capture(s)")
    print(f"  Resumable:              {len(report.resumable)}")
    print(f"  Stale:                  {len(report.stale)}")
    print(f"  Quarantined:            {len(report.quarantined)}")
    print(f"  Staging files removed:  {len(report.removed_staging_files)}")
    for capture_id in report.stale:
        print(f"  ⚠️  stale: {capture_id}")
    return 0


def cmd_backup(config: Config, verify: bool, prune: bool) -> int:
    """Create a ledger backup."""
    backup_dir = config.backup_dir
    if backup_dir is None:
        print("❌ No backup directory: set backup.dir or vault.root")
        return 1

    store = open_store(config)
    backups = LedgerBackup(store, backup_dir, keep=config.backup.keep)
    try:
        result = backups.create()
    except BackupError as e:
        print(f"❌ {e}")
        return 1
    print(f"✓ Backup written to {result.path} ({result.size_bytes} bytes)")

    if verify and not backups.verify(result.path):
        print("❌ Backup failed verification")
        return 1

    if prune:
        removed = backups.prune()
        if removed:
            print(f"  Pruned {len(removed)} old backup(s)")
    return 0


def cmd_errors(config: Config, stage: str | None, limit: int) -> int:
    """List recent error log entries."""
    store = open_store(config)
    entries = store.list_errors(stage=stage, limit=limit)
    if not entries:
        print("No errors recorded")
        return 0

    for entry in entries:
        target = entry.capture_id or "-"
        print(f"{entry.created_at}  {entry.stage.value:<10} {target:<26}  {entry.message}")
    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    # Load config
    try:
        config = load_config(parsed.config)
        errors = config.validate(require_vault=parsed.command == "export")
        if errors:
            raise ConfigValidationError(errors)
    except (OSError, ValueError, yaml.YAMLError, ConfigValidationError) as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    # Route to command
    if parsed.command == "init":
        return cmd_init(config, parsed.config)
    elif parsed.command == "status":
        return cmd_status(config)
    elif parsed.command == "export":
        return cmd_export(config, parsed.limit)
    elif parsed.command == "resume":
        return cmd_resume(config)
    elif parsed.command == "recover":
        return cmd_recover(config)
    elif parsed.command == "backup":
        return cmd_backup(config, verify=not parsed.no_verify, prune=not parsed.no_prune)
    elif parsed.command == "errors":
        return cmd_errors(config, parsed.stage, parsed.limit)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
