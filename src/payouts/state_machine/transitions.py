"""Transition map defining all valid (state, event) -> state mappings."""

from enum import StrEnum

from payouts.domain.types import SubmissionStatus


class SubmissionEvent(StrEnum):
    """Events that can trigger submission state transitions."""

    METRICS_READ = "metrics_read"
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_PAYMENT = "request_payment"
    MARK_PAID = "mark_paid"
    CREATOR_REJECT = "creator_reject"
    OVERRIDE_APPROVE = "override_approve"
    CAMPAIGN_CLOSED = "campaign_closed"


# All valid (current_state, event_string) -> next_state mappings.
# Any pair not in this dict is an invalid transition.
TRANSITIONS: dict[tuple[SubmissionStatus, str], SubmissionStatus] = {
    # From READING_VIEWS
    (SubmissionStatus.READING_VIEWS, SubmissionEvent.METRICS_READ): (
        SubmissionStatus.CHECKING_CONTENT
    ),
    (SubmissionStatus.READING_VIEWS, SubmissionEvent.REJECT): SubmissionStatus.REJECTED,
    # From CHECKING_CONTENT
    (SubmissionStatus.CHECKING_CONTENT, SubmissionEvent.APPROVE): SubmissionStatus.APPROVED,
    (SubmissionStatus.CHECKING_CONTENT, SubmissionEvent.REJECT): SubmissionStatus.REJECTED,
    # From APPROVED
    (SubmissionStatus.APPROVED, SubmissionEvent.REQUEST_PAYMENT): (
        SubmissionStatus.PAYMENT_REQUESTED
    ),
    (SubmissionStatus.APPROVED, SubmissionEvent.CREATOR_REJECT): (
        SubmissionStatus.CREATOR_REJECTED
    ),
    (SubmissionStatus.APPROVED, SubmissionEvent.CAMPAIGN_CLOSED): SubmissionStatus.REJECTED,
    # From PAYMENT_REQUESTED
    (SubmissionStatus.PAYMENT_REQUESTED, SubmissionEvent.MARK_PAID): SubmissionStatus.PAID,
    (SubmissionStatus.PAYMENT_REQUESTED, SubmissionEvent.CREATOR_REJECT): (
        SubmissionStatus.CREATOR_REJECTED
    ),
    # Manual exception path out of the rejected states
    (SubmissionStatus.REJECTED, SubmissionEvent.OVERRIDE_APPROVE): SubmissionStatus.APPROVED,
    (SubmissionStatus.CREATOR_REJECTED, SubmissionEvent.OVERRIDE_APPROVE): (
        SubmissionStatus.APPROVED
    ),
}

# States that reject all events -- no outgoing transitions allowed.
TERMINAL_STATES: frozenset[SubmissionStatus] = frozenset(
    {SubmissionStatus.PAID, SubmissionStatus.PAYMENT_FAILED}
)


def next_state(state: SubmissionStatus, event: str) -> SubmissionStatus | None:
    """Look up the target of *event* from *state*, or ``None`` if not allowed."""
    if state in TERMINAL_STATES:
        return None
    return TRANSITIONS.get((state, event))
