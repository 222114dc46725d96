"""
Voice / Email → Staging Ledger → Obsidian Vault

A durable, single-process pipeline that stages short-lived personal captures
in SQLite with two independent deduplication keys and exports each accepted
capture exactly once into a Markdown vault via temp-write, fsync and rename.
"""

__version__ = "0.1.0"
