"""
Markdown rendering for vault exports.

Output format:

    ---
    id: <ULID>
    source: voice | email
    captured_at: <ISO8601>
    content_hash: <SHA-256>
    channel: <channel>
    ---

    <raw_content>
"""

import frontmatter

from ..state_store import CaptureRecord


def render_markdown(capture: CaptureRecord) -> str:
    """Render a capture as Markdown with YAML frontmatter."""
    metadata = {
        "id": capture.id,
        "source": capture.source.value,
        "captured_at": capture.created_at,
        "content_hash": capture.content_hash,
    }
    if capture.meta.channel:
        metadata["channel"] = capture.meta.channel

    post = frontmatter.Post(capture.raw_content, **metadata)
    return frontmatter.dumps(post) + "\n"
