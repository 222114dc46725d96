"""
Vault path resolution.

File names derive solely from the capture id, and the id is validated before
any path is built:

    <vault>/inbox/<id>.md     finalized export
    <vault>/.trash/<id>.tmp   staging copy, never visible under the export name
"""

from pathlib import Path, PurePosixPath

from ..schemas.identifiers import validate_capture_id

DEFAULT_INBOX_DIR = "inbox"
DEFAULT_STAGING_DIR = ".trash"
EXPORT_SUFFIX = ".md"
STAGING_SUFFIX = ".tmp"


def resolve_export_path(
    vault_root: Path | str, capture_id: str, inbox_dir: str = DEFAULT_INBOX_DIR
) -> Path:
    """Destination path for a capture's Markdown file."""
    validate_capture_id(capture_id)
    return Path(vault_root) / inbox_dir / f"{capture_id}{EXPORT_SUFFIX}"


def resolve_staging_path(
    vault_root: Path | str, capture_id: str, staging_dir: str = DEFAULT_STAGING_DIR
) -> Path:
    """Staging path for a capture's in-progress write."""
    validate_capture_id(capture_id)
    return Path(vault_root) / staging_dir / f"{capture_id}{STAGING_SUFFIX}"


def vault_relative(vault_root: Path | str, path: Path) -> str:
    """Vault-relative POSIX path, as stored in the export audit trail."""
    return str(PurePosixPath(*path.relative_to(Path(vault_root)).parts))
