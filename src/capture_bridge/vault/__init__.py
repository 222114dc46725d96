"""
Vault file layer.

Path resolution, collision detection, the atomic temp-then-rename writer
and Markdown rendering. This is the only package that touches the vault
filesystem.
"""

from .atomic_writer import CollisionResult, check_collision, write_atomic
from .markdown import render_markdown
from .paths import (
    DEFAULT_INBOX_DIR,
    DEFAULT_STAGING_DIR,
    resolve_export_path,
    resolve_staging_path,
    vault_relative,
)

__all__ = [
    "CollisionResult",
    "check_collision",
    "write_atomic",
    "render_markdown",
    "DEFAULT_INBOX_DIR",
    "DEFAULT_STAGING_DIR",
    "resolve_export_path",
    "resolve_staging_path",
    "vault_relative",
]
