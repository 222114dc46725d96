"""
CLI runner module.

Provides commands:
- init: Write a default config and create the ledger
- status: Capture counts, schema and pragma health
- export: Publish transcribed captures to the vault
- recover: Startup recovery sweep
- backup: Back up, verify and prune the ledger
- errors: Show recent diagnostic entries
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]
