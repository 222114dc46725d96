"""Test fixtures and utilities."""

from pathlib import Path

import pytest

from capture_bridge.schemas import CaptureMeta, CaptureSource, compute_content_hash
from capture_bridge.services import AtomicExportWriter, DeduplicationEngine, RetryPolicy
from capture_bridge.state_store import LedgerStore, NewCapture

SAMPLE_TRANSCRIPT = """
Reminder for tomorrow: call the landlord about the heating,
then pick up the parcel before noon.
"""

SAMPLE_EMAIL_BODY = """
Hi,

the invoice for October is attached. Please confirm receipt.

Thanks,
Dana
"""


@pytest.fixture
def sample_transcript() -> str:
    """Sample voice memo transcript."""
    return SAMPLE_TRANSCRIPT


@pytest.fixture
def sample_email_body() -> str:
    """Sample email body."""
    return SAMPLE_EMAIL_BODY


@pytest.fixture
def temp_db(tmp_path) -> Path:
    """Temporary database path."""
    return tmp_path / "data" / "ledger.sqlite"


@pytest.fixture
def vault(tmp_path) -> Path:
    """Empty vault root."""
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def store(temp_db) -> LedgerStore:
    """Fresh staging ledger."""
    return LedgerStore(temp_db)


@pytest.fixture
def sleeps() -> list[float]:
    """Records backoff delays instead of sleeping."""
    return []


@pytest.fixture
def retry_policy(sleeps) -> RetryPolicy:
    """Retry policy that never sleeps."""
    return RetryPolicy(max_attempts=3, base_delay=0.01, jitter=0.0, sleep=sleeps.append)


@pytest.fixture
def dedup(store, retry_policy) -> DeduplicationEngine:
    return DeduplicationEngine(store, retry_policy=retry_policy)


@pytest.fixture
def writer(store, retry_policy) -> AtomicExportWriter:
    return AtomicExportWriter(store, retry_policy=retry_policy)


@pytest.fixture
def make_transcribed(store):
    """Factory staging a voice capture and moving it to transcribed."""
    counter = {"n": 0}

    def _make(text: str = "hello world", channel_native_id: str | None = None) -> str:
        counter["n"] += 1
        native_id = channel_native_id or f"memo-{counter['n']}.m4a"
        capture_id = store.insert(
            NewCapture(
                source=CaptureSource.VOICE,
                meta=CaptureMeta(channel="voice_memos", channel_native_id=native_id),
            )
        )
        store.update_status(
            capture_id,
            "transcribed",
            {"raw_content": text, "content_hash": compute_content_hash(text)},
        )
        return capture_id

    return _make
