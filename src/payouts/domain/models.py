"""Pydantic v2 models for ledger records and service inputs.

All monetary values are integers in the token's smallest unit.  Float inputs
are rejected for amounts to prevent precision errors; percentages are kept as
``Decimal``.
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_FLOOR, Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from payouts.domain.types import (
    BundleStatus,
    CampaignStatus,
    SocialPlatform,
    SubmissionStatus,
    TaskType,
    TokenKind,
)


def _reject_float(v: object) -> object:
    if isinstance(v, float):
        raise ValueError("Use int base units, not float, for monetary values")
    return v


def percent_of(total: int, percent: Decimal) -> int:
    """Return ``floor(total * percent / 100)`` using exact decimal arithmetic."""
    share = Decimal(total) * percent / Decimal(100)
    return int(share.to_integral_value(rounding=ROUND_FLOOR))


class PaymentToken(BaseModel):
    """Descriptor of the token a campaign is funded and paid out in."""

    model_config = ConfigDict(frozen=True)

    kind: TokenKind = TokenKind.NATIVE
    symbol: str = "SOL"
    decimals: int = 9
    mint: str | None = None

    @field_validator("decimals")
    @classmethod
    def decimals_in_range(cls, v: int) -> int:
        """Token decimals must fit the ledger's fixed-point representation."""
        if not 0 <= v <= 18:
            raise ValueError("decimals must be between 0 and 18")
        return v

    @model_validator(mode="after")
    def custom_tokens_need_mint(self) -> PaymentToken:
        """A custom token is only identifiable by its mint address."""
        if self.kind == TokenKind.CUSTOM and not self.mint:
            raise ValueError("custom tokens require a mint address")
        return self

    def format_amount(self, amount: int) -> str:
        """Render *amount* base units as a human-readable token amount."""
        value = Decimal(amount).scaleb(-self.decimals).normalize()
        return f"{value:f} {self.symbol}"


USDC_TOKEN = PaymentToken(
    kind=TokenKind.STABLE,
    symbol="USDC",
    decimals=6,
    mint="EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
)


class ContentGuidelines(BaseModel):
    """Ordered "do" and "don't" lists a post must satisfy."""

    model_config = ConfigDict(frozen=True)

    dos: list[str] = Field(default_factory=list)
    donts: list[str] = Field(default_factory=list)


class CampaignParams(BaseModel):
    """Input for creating a campaign."""

    model_config = ConfigDict(frozen=True)

    total_budget: int
    cpm_rate: int
    min_views: int = 0
    min_payout_threshold: int = 0
    max_budget_per_user_percent: Decimal | None = None
    max_budget_per_post_percent: Decimal | None = None
    guidelines: ContentGuidelines = Field(default_factory=ContentGuidelines)
    deadline_at: datetime | None = None
    payment_token: PaymentToken = Field(default_factory=PaymentToken)

    @field_validator("total_budget", "cpm_rate", "min_payout_threshold", mode="before")
    @classmethod
    def reject_float_amounts(cls, v: object) -> object:
        """Reject float inputs for monetary fields to prevent precision errors."""
        return _reject_float(v)

    @field_validator("total_budget", "cpm_rate")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        """Budget and CPM must be strictly positive."""
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("min_views", "min_payout_threshold")
    @classmethod
    def must_not_be_negative(cls, v: int) -> int:
        """Thresholds may be zero (no minimum) but never negative."""
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator("max_budget_per_user_percent", "max_budget_per_post_percent")
    @classmethod
    def percent_in_range(cls, v: Decimal | None) -> Decimal | None:
        """Caps are a share of the total budget in (0, 100]."""
        if v is not None and not Decimal(0) < v <= Decimal(100):
            raise ValueError("percentage must be in (0, 100]")
        return v

    @field_validator("deadline_at")
    @classmethod
    def deadline_must_be_aware(cls, v: datetime | None) -> datetime | None:
        """Deadlines are compared against UTC now and must carry a timezone."""
        if v is not None and v.tzinfo is None:
            raise ValueError("deadline_at must be timezone-aware")
        return v


class Campaign(BaseModel):
    """A campaign-type task with its budget ledger counters."""

    model_config = ConfigDict(frozen=True)

    campaign_id: str
    creator_id: str
    task_type: TaskType = TaskType.CAMPAIGN
    status: CampaignStatus = CampaignStatus.OPEN
    total_budget: int
    budget_remaining: int
    cpm_rate: int
    min_views: int = 0
    min_payout_threshold: int = 0
    max_budget_per_user_percent: Decimal | None = None
    max_budget_per_post_percent: Decimal | None = None
    guidelines: ContentGuidelines = Field(default_factory=ContentGuidelines)
    deadline_at: datetime | None = None
    payment_token: PaymentToken = Field(default_factory=PaymentToken)
    refund_tx_ref: str | None = None
    refund_amount: int | None = None
    created_at: datetime

    @model_validator(mode="after")
    def remaining_within_total(self) -> Campaign:
        """The remaining budget never goes negative nor exceeds the total."""
        if not 0 <= self.budget_remaining <= self.total_budget:
            raise ValueError(
                f"budget_remaining ({self.budget_remaining}) must be within "
                f"[0, {self.total_budget}]"
            )
        return self

    def per_user_cap(self) -> int | None:
        """Maximum cumulative allocation for one submitter, from the *total* budget."""
        if self.max_budget_per_user_percent is None:
            return None
        return percent_of(self.total_budget, self.max_budget_per_user_percent)

    def per_post_cap(self) -> int | None:
        """Maximum allocation for a single post, from the *total* budget."""
        if self.max_budget_per_post_percent is None:
            return None
        return percent_of(self.total_budget, self.max_budget_per_post_percent)


class Submission(BaseModel):
    """A proof-of-engagement claim against a campaign."""

    model_config = ConfigDict(frozen=True)

    submission_id: str
    campaign_id: str
    submitter_id: str
    platform: SocialPlatform = SocialPlatform.X
    post_id: str
    post_url: str
    fee_tx_ref: str
    status: SubmissionStatus
    engagement_count: int | None = None
    payout_amount: int | None = None
    rejection_reason: str | None = None
    content_check_passed: bool | None = None
    content_check_explanation: str | None = None
    bundle_id: str | None = None
    payment_tx_ref: str | None = None
    payment_sequence_index: int | None = None
    created_at: datetime
    updated_at: datetime


class PaymentBundle(BaseModel):
    """One requester's approved submissions aggregated into a single payout."""

    model_config = ConfigDict(frozen=True)

    bundle_id: str
    campaign_id: str
    requester_id: str
    status: BundleStatus
    total_amount: int
    submission_ids: list[str] = Field(default_factory=list)
    payment_tx_ref: str | None = None
    sequence_index: int | None = None
    created_at: datetime
    paid_at: datetime | None = None


class ReferralLink(BaseModel):
    """A referrer's share of the platform fee earned from a referred user."""

    model_config = ConfigDict(frozen=True)

    referral_id: str
    referrer_id: str
    referred_user_id: str
    referrer_fee_pct: int

    @field_validator("referrer_fee_pct")
    @classmethod
    def pct_in_range(cls, v: int) -> int:
        """The referrer's share is a percentage of the platform fee."""
        if not 0 <= v <= 100:
            raise ValueError("referrer_fee_pct must be between 0 and 100")
        return v


class TransferProof(BaseModel):
    """Reference to an externally executed transfer."""

    model_config = ConfigDict(frozen=True)

    tx_ref: str
    sequence_index: int | None = None

    @field_validator("tx_ref")
    @classmethod
    def tx_ref_not_empty(cls, v: str) -> str:
        """A proof without a transaction reference cannot be verified."""
        if not v.strip():
            raise ValueError("tx_ref must not be empty")
        return v.strip()


class CampaignStats(BaseModel):
    """Aggregate counts and sums for a campaign."""

    total_budget: int
    budget_remaining: int
    budget_allocated: int
    budget_spent: int
    cpm_rate: int
    min_views: int
    total_submissions: int
    approved: int
    payment_requested: int
    paid: int
    rejected: int
    pending: int
    total_engagement: int
    caller_allocated: int
    caller_paid: int


class SubmissionPage(BaseModel):
    """One page of a campaign's submissions, newest first."""

    submissions: list[Submission]
    page: int
    limit: int
    total: int
    pages: int


class FinishResult(BaseModel):
    """Outcome of closing a campaign."""

    campaign_id: str
    status: CampaignStatus
    auto_rejected: int
    released_amount: int
    refund_amount: int
    refund_tx_ref: str | None = None
