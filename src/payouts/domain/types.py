"""Domain enumerations for the campaign payout engine."""

from enum import StrEnum


class CampaignStatus(StrEnum):
    """Lifecycle states of a campaign."""

    OPEN = "open"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SubmissionStatus(StrEnum):
    """States of an engagement submission."""

    READING_VIEWS = "reading_views"
    CHECKING_CONTENT = "checking_content"
    APPROVED = "approved"
    PAYMENT_REQUESTED = "payment_requested"
    PAID = "paid"
    REJECTED = "rejected"
    CREATOR_REJECTED = "creator_rejected"
    PAYMENT_FAILED = "payment_failed"


class BundleStatus(StrEnum):
    """States of a payment bundle."""

    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


class TaskType(StrEnum):
    """Marketplace task types.  Only ``CAMPAIGN`` is handled by this engine."""

    CAMPAIGN = "campaign"
    QUOTE = "quote"
    COMPETITION = "competition"


class TokenKind(StrEnum):
    """Payment token families a campaign can be funded with."""

    NATIVE = "native"
    STABLE = "stable"
    CUSTOM = "custom"


class SocialPlatform(StrEnum):
    """External platforms a post reference can point at."""

    X = "x"


class RejectionPreset(StrEnum):
    """Preset reasons offered to creators when rejecting a submission."""

    BOTTING = "Botting"
    QUALITY = "Quality"
    RELEVANCY = "Relevancy"
    OTHER = "Other"


class NotificationType(StrEnum):
    """Notification kinds emitted to the notification sink."""

    SUBMISSION_APPROVED = "campaign_submission_approved"
    SUBMISSION_REJECTED = "campaign_submission_rejected"
    CREATOR_REJECTED = "campaign_creator_rejected"
    PAYMENT_REQUEST = "campaign_payment_request"
    PAYMENT_COMPLETED = "campaign_payment_completed"


# Submission states whose payout has been taken out of the budget ledger.
ALLOCATED_STATES: frozenset[SubmissionStatus] = frozenset(
    {
        SubmissionStatus.APPROVED,
        SubmissionStatus.PAYMENT_REQUESTED,
        SubmissionStatus.PAID,
    }
)

# Intermediate pipeline states that a crashed attempt can leave behind.
PROCESSING_STATES: frozenset[SubmissionStatus] = frozenset(
    {SubmissionStatus.READING_VIEWS, SubmissionStatus.CHECKING_CONTENT}
)

REJECTED_STATES: frozenset[SubmissionStatus] = frozenset(
    {SubmissionStatus.REJECTED, SubmissionStatus.CREATOR_REJECTED}
)
