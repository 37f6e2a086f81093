"""Domain types, models, and errors for the payout engine."""

from payouts.domain.errors import (
    ErrorCode,
    IdentityExpiredError,
    InvalidTransitionError,
    PayoutError,
    VerifierError,
)
from payouts.domain.models import (
    USDC_TOKEN,
    Campaign,
    CampaignParams,
    CampaignStats,
    ContentGuidelines,
    FinishResult,
    PaymentBundle,
    PaymentToken,
    ReferralLink,
    Submission,
    TransferProof,
    percent_of,
)
from payouts.domain.types import (
    ALLOCATED_STATES,
    PROCESSING_STATES,
    REJECTED_STATES,
    BundleStatus,
    CampaignStatus,
    NotificationType,
    RejectionPreset,
    SocialPlatform,
    SubmissionStatus,
    TaskType,
    TokenKind,
)

__all__ = [
    "ALLOCATED_STATES",
    "PROCESSING_STATES",
    "REJECTED_STATES",
    "USDC_TOKEN",
    "BundleStatus",
    "Campaign",
    "CampaignParams",
    "CampaignStats",
    "CampaignStatus",
    "ContentGuidelines",
    "ErrorCode",
    "FinishResult",
    "IdentityExpiredError",
    "InvalidTransitionError",
    "NotificationType",
    "PaymentBundle",
    "PaymentToken",
    "PayoutError",
    "ReferralLink",
    "RejectionPreset",
    "SocialPlatform",
    "Submission",
    "SubmissionStatus",
    "TaskType",
    "TokenKind",
    "TransferProof",
    "VerifierError",
    "percent_of",
]
