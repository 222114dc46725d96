"""Tests for the capture status state machine."""

import logging

import pytest

from capture_bridge.schemas import CaptureStatus
from capture_bridge.state_store import InvalidTransition
from capture_bridge.state_store.state_machine import (
    EXPORTED_STATES,
    NON_TERMINAL_STATES,
    TERMINAL_STATES,
    assert_valid_transition,
    get_valid_transitions,
    is_terminal,
    validate_state_path,
    validate_transition,
)


class TestTransitions:
    @pytest.mark.parametrize(
        "current,target",
        [
            ("staged", "transcribed"),
            ("staged", "failed_transcription"),
            ("transcribed", "exported"),
            ("transcribed", "exported_duplicate"),
            ("transcribed", "exported_placeholder"),
        ],
    )
    def test_valid(self, current, target):
        assert validate_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            ("staged", "exported"),
            ("transcribed", "staged"),
            ("exported", "transcribed"),
            ("failed_transcription", "staged"),
            ("failed_transcription", "transcribed"),
            ("exported_placeholder", "exported"),
            ("staged", "staged"),
        ],
    )
    def test_invalid(self, current, target):
        assert not validate_transition(current, target)

    def test_unknown_status_is_invalid(self):
        assert not validate_transition("staged", "archived")

    def test_terminal_states(self):
        assert TERMINAL_STATES == EXPORTED_STATES | {CaptureStatus.FAILED_TRANSCRIPTION}
        assert NON_TERMINAL_STATES == {CaptureStatus.STAGED, CaptureStatus.TRANSCRIBED}
        for status in TERMINAL_STATES:
            assert is_terminal(status)
            assert get_valid_transitions(status) == frozenset()


class TestAssertValidTransition:
    def test_passes_silently(self):
        assert_valid_transition(CaptureStatus.STAGED, CaptureStatus.TRANSCRIBED)

    def test_raises_with_allowed_targets(self):
        with pytest.raises(InvalidTransition) as exc_info:
            assert_valid_transition("staged", "exported")
        assert exc_info.value.allowed == ("failed_transcription", "transcribed")

    def test_terminal_message(self):
        with pytest.raises(InvalidTransition, match="exported is terminal"):
            assert_valid_transition("exported", "transcribed")

    def test_logged_at_error(self, caplog):
        with caplog.at_level(logging.ERROR):
            with pytest.raises(InvalidTransition):
                assert_valid_transition("exported", "staged")
        assert any("Invalid transition" in r.message for r in caplog.records)


class TestStatePath:
    def test_full_lifecycle(self):
        assert validate_state_path(["staged", "transcribed", "exported"])

    def test_skipping_a_step(self):
        assert not validate_state_path(["staged", "exported"])

    def test_empty_path(self):
        assert not validate_state_path([])
