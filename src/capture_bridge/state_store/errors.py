"""
Ledger error taxonomy.

`DuplicateContent` and `DuplicateSource` are business outcomes that the dedup
engine resolves into a folded row or a no-op. `InvalidTransition` is always a
programming defect.
"""


class LedgerError(Exception):
    """Base exception for staging ledger errors."""

    pass


class DuplicateContent(LedgerError):
    """Another capture already holds this content hash."""

    def __init__(self, content_hash: str, existing_id: str | None = None):
        self.content_hash = content_hash
        self.existing_id = existing_id
        super().__init__(
            f"Content hash {content_hash[:16]}... already staged by capture {existing_id}"
        )


class DuplicateSource(LedgerError):
    """The (channel, channel_native_id) pair has already been staged."""

    def __init__(self, channel: str, channel_native_id: str, existing_id: str | None = None):
        self.channel = channel
        self.channel_native_id = channel_native_id
        self.existing_id = existing_id
        super().__init__(
            f"Upstream item {channel}:{channel_native_id} already staged by capture {existing_id}"
        )


class CaptureNotFound(LedgerError):
    """No capture with this id."""

    def __init__(self, capture_id: str):
        self.capture_id = capture_id
        super().__init__(f"Capture {capture_id} not found")


class InvalidTransition(LedgerError):
    """A status change that the capture state machine forbids."""

    def __init__(self, current: str, target: str, allowed: tuple[str, ...] = ()):
        self.current = current
        self.target = target
        self.allowed = allowed
        if allowed:
            detail = f"valid transitions: {', '.join(allowed)}"
        else:
            detail = f"{current} is terminal"
        super().__init__(f"Invalid transition: {current} -> {target} ({detail})")
