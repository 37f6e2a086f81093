"""Request bodies for the campaign payout routes."""

from __future__ import annotations

from pydantic import BaseModel, Field

from payouts.domain.models import TransferProof
from payouts.domain.types import RejectionPreset


class SubmitEngagementRequest(BaseModel):
    """A post to be paid for, with the anti-spam fee transfer that backs it."""

    post_url: str = Field(min_length=1)
    fee_tx_ref: str


class RejectSubmissionRequest(BaseModel):
    """A creator's rejection: a preset label, free text, or both."""

    preset: RejectionPreset | None = None
    reason: str | None = None
    ban_submitter: bool = False

    def resolved_reason(self) -> str | None:
        """Combine the preset label and free text into the stored reason.

        ``Other`` carries no meaning of its own, so only the free text is kept.
        """
        detail = (self.reason or "").strip()
        if self.preset is None or self.preset == RejectionPreset.OTHER:
            return detail or None
        if detail:
            return f"{self.preset.value}: {detail}"
        return self.preset.value


class FinishCampaignRequest(BaseModel):
    """Optional proof of the creator's refund transfer."""

    refund_proof: TransferProof | None = None
