"""Creator controls over individual submissions: reject and override-approve."""

from __future__ import annotations

import structlog

from payouts.domain.errors import ErrorCode, PayoutError
from payouts.domain.models import Campaign, Submission
from payouts.domain.types import (
    REJECTED_STATES,
    BundleStatus,
    CampaignStatus,
    NotificationType,
    SubmissionStatus,
)
from payouts.engine import EngineContext, campaign_link
from payouts.ledger.budget import capped_request, raw_payout
from payouts.notifications import Notification
from payouts.observability.metrics import BUDGET_ALLOCATED, BUDGET_RELEASED
from payouts.state_machine.transitions import SubmissionEvent

logger = structlog.get_logger()

_REJECTABLE = frozenset({SubmissionStatus.APPROVED, SubmissionStatus.PAYMENT_REQUESTED})


def normalize_reason(reason: str | None, max_length: int) -> str:
    """Trim and validate a creator's rejection reason.

    Raises:
        PayoutError: ``MISSING_REASON`` or ``REASON_TOO_LONG``.
    """
    cleaned = (reason or "").strip()
    if not cleaned:
        raise PayoutError(ErrorCode.MISSING_REASON, "A rejection reason is required")
    if len(cleaned) > max_length:
        raise PayoutError(
            ErrorCode.REASON_TOO_LONG,
            f"Rejection reason must be {max_length} characters or less",
        )
    return cleaned


class CreatorControls:
    """Manual decisions a campaign creator can take on a submission."""

    def __init__(self, ctx: EngineContext) -> None:
        self._ctx = ctx

    def _load(
        self, submission_id: str, actor_id: str, campaign_id: str | None, action: str
    ) -> tuple[Submission, Campaign]:
        ctx = self._ctx
        submission = ctx.store.get_submission(submission_id)
        if submission is None or (campaign_id is not None and submission.campaign_id != campaign_id):
            raise PayoutError(ErrorCode.NOT_FOUND, "Submission not found")
        campaign = ctx.require_creator(submission.campaign_id, actor_id, action)
        return submission, campaign

    async def reject(
        self,
        submission_id: str,
        actor_id: str,
        reason: str | None,
        *,
        ban_submitter: bool = False,
        campaign_id: str | None = None,
    ) -> Submission:
        """Reject an approved or payment-requested submission.

        The payout goes back to the campaign budget in the same transaction.
        A submission pulled out of a pending bundle leaves the bundle with a
        recomputed total; an emptied bundle is cancelled.

        Args:
            submission_id: The submission to reject.
            actor_id: Must be the campaign creator.
            reason: Preset label or free text, at most ``max_reason_length``.
            ban_submitter: Also ban the submitter from the creator's campaigns.
            campaign_id: When given, the submission must belong to it.

        Returns:
            The CREATOR_REJECTED submission.
        """
        ctx = self._ctx
        cleaned = normalize_reason(reason, ctx.config.max_reason_length)
        submission, campaign = self._load(
            submission_id, actor_id, campaign_id, "reject submissions"
        )
        if submission.status not in _REJECTABLE:
            raise PayoutError(
                ErrorCode.INVALID_STATUS,
                f"Submission status is {submission.status.value}, "
                "expected approved or payment_requested",
                {"status": submission.status.value},
            )

        outbox = ctx.outbox()
        with ctx.store.transaction():
            # Re-read under the write lock; a concurrent reconcile may have paid it.
            current = ctx.store.require_submission(submission_id)
            refund = current.payout_amount or 0

            rejected = ctx.store.transition_submission(
                submission_id,
                SubmissionEvent.CREATOR_REJECT,
                now=ctx.now(),
                rejection_reason=cleaned,
                bundle_id=None,
            )
            if refund > 0:
                ctx.budget.release(campaign.campaign_id, refund, now=ctx.now())
                ctx.audit.log_release(campaign.campaign_id, submission_id, refund)

            if current.bundle_id is not None:
                self._shrink_bundle(current.bundle_id)

            if ban_submitter:
                ctx.store.add_ban(campaign.creator_id, current.submitter_id, cleaned, ctx.now())
                ctx.audit.log_ban(campaign.creator_id, current.submitter_id, cleaned)

            ctx.audit.log_submission_transition(
                campaign.campaign_id,
                submission_id,
                current.status.value,
                rejected.status.value,
                actor_id=actor_id,
                reason=cleaned,
            )

        BUDGET_RELEASED.inc(refund)
        logger.info(
            "Submission rejected by creator",
            submission_id=submission_id,
            released=refund,
            banned=ban_submitter,
        )
        outbox.notify(
            Notification(
                user_id=submission.submitter_id,
                type=NotificationType.CREATOR_REJECTED,
                title="Campaign submission rejected by creator",
                body=f"The campaign creator rejected your submission. Reason: {cleaned}",
                link=campaign_link(campaign.campaign_id),
            )
        )
        await outbox.flush()
        return rejected

    def _shrink_bundle(self, bundle_id: str) -> None:
        store = self._ctx.store
        bundle = store.get_bundle(bundle_id)
        if bundle is None or bundle.status != BundleStatus.PENDING:
            return
        members = store.list_submissions(
            bundle.campaign_id,
            statuses=[SubmissionStatus.PAYMENT_REQUESTED],
            bundle_id=bundle_id,
        )
        total = sum(m.payout_amount or 0 for m in members)
        store.set_bundle_total(bundle_id, total)
        if not members:
            store.set_bundle_status(
                bundle_id, BundleStatus.CANCELLED, expected=BundleStatus.PENDING
            )
            logger.info("Payment bundle emptied and cancelled", bundle_id=bundle_id)

    async def override_approve(
        self, submission_id: str, actor_id: str, *, campaign_id: str | None = None
    ) -> Submission:
        """Promote a rejected submission to APPROVED without re-verifying it.

        The payout is re-derived from the stored engagement count and goes
        through the same caps and atomic allocation as intake.

        Returns:
            The APPROVED submission with its new payout.

        Raises:
            PayoutError: ``INVALID_STATUS``, ``MISSING_ENGAGEMENT``,
                ``CLOSED``, ``USER_CAP_REACHED`` or ``BUDGET_EXHAUSTED``.
        """
        ctx = self._ctx
        submission, campaign = self._load(
            submission_id, actor_id, campaign_id, "approve submissions"
        )
        if submission.status not in REJECTED_STATES:
            raise PayoutError(
                ErrorCode.INVALID_STATUS,
                f"Submission status is {submission.status.value}, expected rejected",
                {"status": submission.status.value},
            )
        if submission.engagement_count is None:
            raise PayoutError(
                ErrorCode.MISSING_ENGAGEMENT,
                "Submission has no measured engagement to derive a payout from",
            )
        if campaign.status not in (CampaignStatus.OPEN, CampaignStatus.PAUSED):
            raise PayoutError(ErrorCode.CLOSED, "This campaign is closed")

        raw = raw_payout(submission.engagement_count, campaign.cpm_rate)

        with ctx.store.transaction():
            current = ctx.store.require_campaign(campaign.campaign_id)
            requested = capped_request(ctx.store, current, submission.submitter_id, raw)
            granted = ctx.budget.try_allocate(campaign.campaign_id, requested, now=ctx.now())
            if granted <= 0:
                raise PayoutError(
                    ErrorCode.BUDGET_EXHAUSTED,
                    "Not enough campaign budget remaining to approve this submission",
                )
            approved = ctx.store.transition_submission(
                submission_id,
                SubmissionEvent.OVERRIDE_APPROVE,
                now=ctx.now(),
                payout_amount=granted,
                rejection_reason=None,
            )
            ctx.audit.log_allocation(campaign.campaign_id, submission_id, raw, granted)
            ctx.audit.log_submission_transition(
                campaign.campaign_id,
                submission_id,
                submission.status.value,
                approved.status.value,
                actor_id=actor_id,
            )

        BUDGET_ALLOCATED.inc(granted)
        logger.info("Submission override-approved", submission_id=submission_id, payout=granted)

        outbox = ctx.outbox()
        outbox.notify(
            Notification(
                user_id=submission.submitter_id,
                type=NotificationType.SUBMISSION_APPROVED,
                title="Campaign submission approved!",
                body=(
                    "The campaign creator approved your submission. Pending payout: "
                    f"{campaign.payment_token.format_amount(granted)}"
                ),
                link=campaign_link(campaign.campaign_id),
            )
        )
        await outbox.flush()
        return approved
