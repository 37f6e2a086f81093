"""Audit trail models for tracking every ledger mutation.

Each entry records the event type, the campaign/submission/bundle it touched,
the acting identity, an optional amount in base units, the status change if
any, and free-form string metadata.
"""

from enum import StrEnum

from pydantic import BaseModel


class EventType(StrEnum):
    """Types of events tracked in the audit trail."""

    CAMPAIGN_CREATED = "campaign_created"
    CAMPAIGN_STATUS = "campaign_status"
    CAMPAIGN_FINISHED = "campaign_finished"
    SUBMISSION_TRANSITION = "submission_transition"
    BUDGET_ALLOCATED = "budget_allocated"
    BUDGET_RELEASED = "budget_released"
    BUNDLE_CREATED = "bundle_created"
    BUNDLE_RECONCILED = "bundle_reconciled"
    CREATOR_BAN = "creator_ban"
    ERROR = "error"


class AuditEntry(BaseModel):
    """A single audit trail entry.

    All fields except event_type are optional to accommodate different
    event types (e.g., campaign_created won't have a submission_id).
    """

    event_type: EventType
    campaign_id: str | None = None
    submission_id: str | None = None
    bundle_id: str | None = None
    actor_id: str | None = None
    amount: int | None = None
    from_status: str | None = None
    to_status: str | None = None
    metadata: dict[str, str] | None = None
