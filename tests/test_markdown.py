"""Tests for Markdown rendering."""

import frontmatter

from capture_bridge.vault import render_markdown


class TestRenderMarkdown:
    def test_frontmatter_and_body(self, store, make_transcribed):
        capture_id = make_transcribed("Call the landlord about the heating.")
        capture = store.get_capture(capture_id)

        rendered = render_markdown(capture)
        post = frontmatter.loads(rendered)

        assert rendered.startswith("---\n")
        assert rendered.endswith("\n")
        assert post["id"] == capture_id
        assert post["source"] == "voice"
        assert post["captured_at"] == capture.created_at
        assert post["content_hash"] == capture.content_hash
        assert post["channel"] == "voice_memos"
        assert post.content == "Call the landlord about the heating."

    def test_deterministic(self, store, make_transcribed):
        capture = store.get_capture(make_transcribed("same"))
        assert render_markdown(capture) == render_markdown(capture)
