"""SubmissionStateMachine class with trigger, history, and valid_events."""

from __future__ import annotations

from payouts.domain.errors import InvalidTransitionError
from payouts.domain.types import SubmissionStatus
from payouts.state_machine.transitions import TERMINAL_STATES, TRANSITIONS, next_state


class SubmissionStateMachine:
    """Finite state machine governing a submission's lifecycle.

    The ledger re-hydrates one of these from the persisted status before every
    status write, so no code path can store a status the transition map does
    not allow.

    Usage::

        sm = SubmissionStateMachine()
        sm.trigger("metrics_read")    # -> CHECKING_CONTENT
        sm.trigger("approve")         # -> APPROVED
        sm.trigger("request_payment") # -> PAYMENT_REQUESTED
        sm.trigger("mark_paid")       # -> PAID (terminal)
    """

    def __init__(
        self,
        initial_state: SubmissionStatus = SubmissionStatus.READING_VIEWS,
    ) -> None:
        self._state: SubmissionStatus = initial_state
        self._history: list[tuple[SubmissionStatus, str, SubmissionStatus]] = []

    @property
    def state(self) -> SubmissionStatus:
        """Return the current submission state."""
        return self._state

    @property
    def is_terminal(self) -> bool:
        """Return True if the machine is in a terminal state."""
        return self._state in TERMINAL_STATES

    @property
    def history(self) -> list[tuple[SubmissionStatus, str, SubmissionStatus]]:
        """Return a copy of the ``(from_state, event, to_state)`` history."""
        return list(self._history)

    def trigger(self, event: str) -> SubmissionStatus:
        """Apply an event to the current state and transition.

        Args:
            event: The event string (e.g. ``"approve"``).

        Returns:
            The new state after the transition.

        Raises:
            InvalidTransitionError: If the transition is not allowed from
                the current state, or if the machine is in a terminal state.
        """
        new_state = next_state(self._state, event)
        if new_state is None:
            raise InvalidTransitionError(self._state, event)

        self._history.append((self._state, event, new_state))
        self._state = new_state
        return new_state

    def get_valid_events(self) -> list[str]:
        """Return a sorted list of events valid from the current state."""
        if self.is_terminal:
            return []
        return sorted(event for state, event in TRANSITIONS if state == self._state)
