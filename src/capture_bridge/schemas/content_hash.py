"""
Content fingerprints (CRITICAL).

This module defines THE content hash used for the `captures.content_hash`
dedup key and for comparing vault files on export.

Hash rules:
- Text is normalized first: CRLF and CR become LF, then leading and trailing
  whitespace is stripped
- The digest is SHA-256, 64 lowercase hex characters
- Email captures hash `message_id|normalized_body` so two distinct messages
  with identical bodies still get distinct fingerprints
"""

import hashlib

HASH_LENGTH = 64


def normalize_text(text: str | None) -> str:
    """Normalize text for deterministic hashing."""
    if text is None:
        return ""
    return text.replace("\r\n", "\n").replace("\r", "\n").strip()


def compute_sha256(data: str | bytes) -> str:
    """SHA-256 hex digest of raw data (no normalization)."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def compute_content_hash(content: str) -> str:
    """
    Compute the fingerprint of finalized capture content.

    Args:
        content: Transcript or email body

    Returns:
        64-character lowercase hex SHA-256 digest

    Examples:
        >>> compute_content_hash("hello\\r\\n") == compute_content_hash("hello")
        True
    """
    return compute_sha256(normalize_text(content))


def compute_email_hash(message_id: str, body: str) -> str:
    """Fingerprint an email from its Message-ID and normalized body."""
    return compute_sha256(f"{message_id}|{normalize_text(body)}")


def is_content_hash(value: str | None) -> bool:
    """Check that a value looks like a content hash."""
    if not value or len(value) != HASH_LENGTH:
        return False
    return all(c in "0123456789abcdef" for c in value)
