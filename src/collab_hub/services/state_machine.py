"""State machine for collaboration status transitions."""

import enum
import logging
from dataclasses import dataclass

from ..models.collaboration import CollaborationStatus

logger = logging.getLogger(__name__)


class CollaborationEvent(str, enum.Enum):
    """What happened to a collaboration."""

    START = "start"
    SUCCEED = "succeed"
    FAIL = "fail"


class InvalidTransitionError(Exception):
    """Raised when a state transition violates the state machine rules."""

    def __init__(self, result: "TransitionResult"):
        self.result = result
        super().__init__(result.reason)


@dataclass
class TransitionResult:
    """Result of a state transition attempt."""

    valid: bool
    from_state: CollaborationStatus
    to_state: CollaborationStatus
    reason: str
    event: CollaborationEvent | None = None


# Format: {(from_state, event): to_state}
# PENDING + FAIL covers a run cancelled before it started.
VALID_TRANSITIONS: dict[tuple[CollaborationStatus, CollaborationEvent], CollaborationStatus] = {
    (CollaborationStatus.PENDING, CollaborationEvent.START): CollaborationStatus.IN_PROGRESS,
    (CollaborationStatus.PENDING, CollaborationEvent.FAIL): CollaborationStatus.FAILED,
    (CollaborationStatus.IN_PROGRESS, CollaborationEvent.SUCCEED): CollaborationStatus.COMPLETED,
    (CollaborationStatus.IN_PROGRESS, CollaborationEvent.FAIL): CollaborationStatus.FAILED,
}

TERMINAL_STATES = frozenset({CollaborationStatus.COMPLETED, CollaborationStatus.FAILED})


def validate_transition(
    from_state: CollaborationStatus,
    event: CollaborationEvent,
) -> TransitionResult:
    """
    Validate a proposed state transition.

    Pure and stateless; callers decide what to do with an invalid result.

    Args:
        from_state: Current collaboration status
        event: The lifecycle event being applied

    Returns:
        TransitionResult indicating if the transition is valid and why
    """
    from_state = CollaborationStatus(from_state)

    if from_state in TERMINAL_STATES:
        return TransitionResult(
            valid=False,
            from_state=from_state,
            to_state=from_state,
            reason=f"Collaboration is {from_state.value}; terminal states are final",
            event=event,
        )

    to_state = VALID_TRANSITIONS.get((from_state, event))
    if to_state is None:
        return TransitionResult(
            valid=False,
            from_state=from_state,
            to_state=from_state,
            reason=f"Invalid transition: {from_state.value} + {event.value}",
            event=event,
        )

    return TransitionResult(
        valid=True,
        from_state=from_state,
        to_state=to_state,
        reason="Valid transition",
        event=event,
    )


def require_transition(
    from_state: CollaborationStatus, event: CollaborationEvent,
) -> CollaborationStatus:
    """Return the target state or raise InvalidTransitionError."""
    result = validate_transition(from_state, event)
    if not result.valid:
        logger.warning(f"Rejected transition: {result.reason}")
        raise InvalidTransitionError(result)
    return result.to_state


def is_terminal_state(state: CollaborationStatus) -> bool:
    """Check if a state is terminal (no valid outgoing transitions)."""
    return CollaborationStatus(state) in TERMINAL_STATES
