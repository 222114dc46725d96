"""
Database migrations module.

This module provides versioned, ordered migrations for the staging ledger.
Migrations are applied in order; the applied version is tracked in the
`sync_state` table under the `schema_version` key.
"""

from .runner import SCHEMA_VERSION_KEY, MigrationRunner, get_all_migrations

__all__ = ["MigrationRunner", "SCHEMA_VERSION_KEY", "get_all_migrations"]
