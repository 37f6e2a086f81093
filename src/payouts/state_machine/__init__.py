"""Submission state machine with transition validation."""

from payouts.state_machine.machine import SubmissionStateMachine
from payouts.state_machine.transitions import (
    TERMINAL_STATES,
    TRANSITIONS,
    SubmissionEvent,
    next_state,
)

__all__ = [
    "SubmissionEvent",
    "SubmissionStateMachine",
    "TERMINAL_STATES",
    "TRANSITIONS",
    "next_state",
]
