"""
Capture identifiers (CRITICAL).

Capture ids are ULIDs: 26 characters of Crockford base32, the first 10
encoding a millisecond timestamp and the last 16 carrying 80 random bits.
They sort lexically in creation order.

The id is the only caller-derived value that ever reaches a vault file path,
so `validate_capture_id` is the single gate between ledger data and the
filesystem. It must run before any path is built.
"""

import os
import re
import threading
import time

# Crockford base32: digits plus uppercase letters without I, L, O, U
ULID_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
ULID_LENGTH = 26
EXCLUDED_CHARACTERS = "ILOU"

_TIMESTAMP_LENGTH = 10
_RANDOM_LENGTH = 16
_RANDOM_BITS = 80

_ULID_RE = re.compile(rf"^[{ULID_ALPHABET}]{{{ULID_LENGTH}}}$")
_DRIVE_PREFIX_RE = re.compile(r"^[A-Za-z]:")

_lock = threading.Lock()
_last_timestamp = -1
_last_random = 0


class InvalidIdentifier(ValueError):
    """A capture id failed validation; nothing was touched on disk."""

    def __init__(self, value: object, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid capture id {value!r}: {reason}")


def _encode(value: int, length: int) -> str:
    chars = []
    for _ in range(length):
        chars.append(ULID_ALPHABET[value & 0x1F])
        value >>= 5
    return "".join(reversed(chars))


def new_capture_id(timestamp_ms: int | None = None) -> str:
    """
    Generate a new ULID.

    Ids generated within the same millisecond increment the random part so
    they stay strictly increasing inside one process.

    Args:
        timestamp_ms: Override the embedded timestamp (milliseconds since epoch)

    Returns:
        26-character uppercase ULID
    """
    global _last_timestamp, _last_random

    ts = int(time.time() * 1000) if timestamp_ms is None else timestamp_ms
    with _lock:
        if ts == _last_timestamp:
            rand = (_last_random + 1) & ((1 << _RANDOM_BITS) - 1)
        else:
            rand = int.from_bytes(os.urandom(10), "big")
        _last_timestamp = ts
        _last_random = rand

    return _encode(ts, _TIMESTAMP_LENGTH) + _encode(rand, _RANDOM_LENGTH)


def timestamp_from_capture_id(capture_id: str) -> int:
    """Decode the millisecond timestamp embedded in a valid ULID."""
    validate_capture_id(capture_id)
    value = 0
    for char in capture_id[:_TIMESTAMP_LENGTH]:
        value = (value << 5) | ULID_ALPHABET.index(char)
    return value


def validate_capture_id(capture_id: object) -> str:
    """
    Strictly validate a capture id before it is used in a path.

    Rejects non-strings, embedded null bytes, path separators, `.`/`..`
    segments, absolute or drive-letter prefixes, wrong lengths, lowercase
    input and the excluded letters I, L, O and U.

    Returns:
        The id, unchanged

    Raises:
        InvalidIdentifier: If any check fails
    """
    if not isinstance(capture_id, str):
        raise InvalidIdentifier(capture_id, "must be a string")
    if "\x00" in capture_id:
        raise InvalidIdentifier(capture_id, "contains a null byte")
    if "/" in capture_id or "\\" in capture_id:
        raise InvalidIdentifier(capture_id, "contains a path separator")
    if capture_id in (".", "..") or ".." in capture_id:
        raise InvalidIdentifier(capture_id, "contains a relative path segment")
    if os.path.isabs(capture_id) or _DRIVE_PREFIX_RE.match(capture_id):
        raise InvalidIdentifier(capture_id, "is an absolute path")
    if len(capture_id) != ULID_LENGTH:
        raise InvalidIdentifier(capture_id, f"must be {ULID_LENGTH} characters, got {len(capture_id)}")
    if not _ULID_RE.match(capture_id):
        raise InvalidIdentifier(capture_id, "contains characters outside the ULID alphabet")
    return capture_id


def is_valid_capture_id(capture_id: object) -> bool:
    """Check an id without raising."""
    try:
        validate_capture_id(capture_id)
    except InvalidIdentifier:
        return False
    return True
