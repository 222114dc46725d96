"""
Capture status state machine.

    staged ──> transcribed ──> exported
       │                 ├──> exported_duplicate
       │                 └──> exported_placeholder
       └──> failed_transcription

Every `exported*` status and `failed_transcription` are terminal. A failed
transcription is never re-queued; a new intake creates a new capture.
"""

import logging
from collections.abc import Iterable

from ..schemas.capture import CaptureStatus
from .errors import InvalidTransition

logger = logging.getLogger(__name__)

VALID_TRANSITIONS: dict[CaptureStatus, frozenset[CaptureStatus]] = {
    CaptureStatus.STAGED: frozenset(
        {CaptureStatus.TRANSCRIBED, CaptureStatus.FAILED_TRANSCRIPTION}
    ),
    CaptureStatus.TRANSCRIBED: frozenset(
        {
            CaptureStatus.EXPORTED,
            CaptureStatus.EXPORTED_DUPLICATE,
            CaptureStatus.EXPORTED_PLACEHOLDER,
        }
    ),
    CaptureStatus.FAILED_TRANSCRIPTION: frozenset(),
    CaptureStatus.EXPORTED: frozenset(),
    CaptureStatus.EXPORTED_DUPLICATE: frozenset(),
    CaptureStatus.EXPORTED_PLACEHOLDER: frozenset(),
}

TERMINAL_STATES = frozenset(s for s, targets in VALID_TRANSITIONS.items() if not targets)
EXPORTED_STATES = frozenset(
    {
        CaptureStatus.EXPORTED,
        CaptureStatus.EXPORTED_DUPLICATE,
        CaptureStatus.EXPORTED_PLACEHOLDER,
    }
)
NON_TERMINAL_STATES = frozenset(VALID_TRANSITIONS) - TERMINAL_STATES


def is_terminal(status: CaptureStatus | str) -> bool:
    """Check if a status has no outgoing transitions."""
    return CaptureStatus(status) in TERMINAL_STATES


def get_valid_transitions(status: CaptureStatus | str) -> frozenset[CaptureStatus]:
    """Statuses reachable in one step from `status`."""
    return VALID_TRANSITIONS[CaptureStatus(status)]


def validate_transition(current: CaptureStatus | str, target: CaptureStatus | str) -> bool:
    """Check a single transition without raising."""
    try:
        return CaptureStatus(target) in get_valid_transitions(current)
    except ValueError:
        return False


def assert_valid_transition(current: CaptureStatus | str, target: CaptureStatus | str) -> None:
    """
    Raise if `current -> target` is not a legal move.

    Rejections are logged at ERROR: reaching this point means a caller has
    lost track of a capture's lifecycle.

    Raises:
        InvalidTransition: If the transition is not allowed
    """
    if validate_transition(current, target):
        return

    current_value = getattr(current, "value", current)
    target_value = getattr(target, "value", target)
    try:
        allowed = tuple(sorted(s.value for s in get_valid_transitions(current)))
    except ValueError:
        allowed = ()

    error = InvalidTransition(current_value, target_value, allowed)
    logger.error(str(error))
    raise error


def validate_state_path(path: Iterable[CaptureStatus | str]) -> bool:
    """Check that every consecutive pair in `path` is a legal transition."""
    steps = list(path)
    if len(steps) < 2:
        return len(steps) == 1
    return all(validate_transition(a, b) for a, b in zip(steps, steps[1:]))
