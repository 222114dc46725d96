"""
Migration runner for versioned database schema changes.

Migrations are named with format: {version}_{name}.py
E.g., 001_capture_indexes.py, 002_errors_log_indexes.py

Each migration must define:
- VERSION: int
- NAME: str
- upgrade(conn: Connection) -> None
- downgrade(conn: Connection) -> None  # May raise NotImplementedError

The ledger is capped at four tables, so there is no migrations table: the
highest applied version lives in `sync_state` under `schema_version`.
Versions are applied strictly in order, so every version at or below the
stored one counts as applied.
"""

import importlib
import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

SCHEMA_VERSION_KEY = "schema_version"


@dataclass
class Migration:
    """Represents a database migration."""

    version: int
    name: str
    upgrade: Callable[[sqlite3.Connection], None]
    downgrade: Callable[[sqlite3.Connection], None] | None


def get_all_migrations() -> list[Migration]:
    """
    Load all migrations from the migrations directory.

    Returns migrations sorted by version.
    """
    migrations = []
    migrations_dir = Path(__file__).parent

    for py_file in sorted(migrations_dir.glob("[0-9][0-9][0-9]_*.py")):
        module_name = py_file.stem
        full_module = f"{__package__}.{module_name}"

        try:
            module = importlib.import_module(full_module)
            migrations.append(
                Migration(
                    version=module.VERSION,
                    name=module.NAME,
                    upgrade=module.upgrade,
                    downgrade=getattr(module, "downgrade", None),
                )
            )
        except (ImportError, AttributeError) as e:
            logger.warning(f"Failed to load migration {module_name}: {e}")

    return sorted(migrations, key=lambda m: m.version)


class MigrationRunner:
    """
    Runs database migrations in order.

    Expects a connection in autocommit mode (`isolation_level=None`); each
    migration runs inside its own explicit transaction together with the
    version bump.
    """

    def __init__(self, conn: sqlite3.Connection):
        """Initialize with a database connection."""
        self.conn = conn

    def get_current_version(self) -> int:
        """Get the highest applied migration version."""
        row = self.conn.execute(
            "SELECT value FROM sync_state WHERE key = ?", (SCHEMA_VERSION_KEY,)
        ).fetchone()
        return int(row[0]) if row else 0

    def _set_version(self, version: int) -> None:
        now = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        self.conn.execute(
            """
            INSERT INTO sync_state (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
        """,
            (SCHEMA_VERSION_KEY, str(version), now),
        )

    def apply_migration(self, migration: Migration) -> None:
        """Apply a single migration."""
        logger.info(f"Applying migration {migration.version}: {migration.name}")

        self.conn.execute("BEGIN IMMEDIATE")
        try:
            migration.upgrade(self.conn)
            self._set_version(migration.version)
            self.conn.execute("COMMIT")
            logger.info(f"Migration {migration.version} applied successfully")

        except Exception as e:
            self.conn.execute("ROLLBACK")
            logger.error(f"Migration {migration.version} failed: {e}")
            raise

    def rollback_migration(self, migration: Migration) -> None:
        """Rollback a single migration."""
        if migration.downgrade is None:
            raise NotImplementedError(
                f"Migration {migration.version} ({migration.name}) does not support rollback"
            )

        logger.info(f"Rolling back migration {migration.version}: {migration.name}")

        self.conn.execute("BEGIN IMMEDIATE")
        try:
            migration.downgrade(self.conn)
            self._set_version(migration.version - 1)
            self.conn.execute("COMMIT")
            logger.info(f"Migration {migration.version} rolled back successfully")

        except Exception as e:
            self.conn.execute("ROLLBACK")
            logger.error(f"Migration {migration.version} rollback failed: {e}")
            raise

    def run_pending(self) -> list[int]:
        """
        Run all pending migrations.

        Returns list of applied migration versions.
        """
        current = self.get_current_version()
        pending = [m for m in get_all_migrations() if m.version > current]

        applied_versions = []
        for migration in pending:
            self.apply_migration(migration)
            applied_versions.append(migration.version)

        if applied_versions:
            logger.info(f"Applied {len(applied_versions)} migrations: {applied_versions}")
        else:
            logger.debug("No pending migrations")

        return applied_versions

    def migrate_to(self, target_version: int) -> None:
        """
        Migrate to a specific version (up or down).

        Args:
            target_version: Target schema version
        """
        current = self.get_current_version()
        migration_map = {m.version: m for m in get_all_migrations()}

        if target_version > current:
            for version in range(current + 1, target_version + 1):
                if version in migration_map:
                    self.apply_migration(migration_map[version])

        elif target_version < current:
            for version in range(current, target_version, -1):
                if version in migration_map:
                    self.rollback_migration(migration_map[version])
