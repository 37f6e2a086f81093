"""Campaign lifecycle: create, pause/resume, finish, stats and submission listing."""

from __future__ import annotations

import uuid

import structlog

from payouts.domain.errors import ErrorCode, PayoutError
from payouts.domain.models import (
    Campaign,
    CampaignParams,
    CampaignStats,
    FinishResult,
    SubmissionPage,
    TransferProof,
)
from payouts.domain.types import (
    ALLOCATED_STATES,
    PROCESSING_STATES,
    REJECTED_STATES,
    CampaignStatus,
    NotificationType,
    SubmissionStatus,
)
from payouts.engine import EngineContext, campaign_link
from payouts.notifications import Notification
from payouts.observability.metrics import BUDGET_RELEASED
from payouts.state_machine.transitions import SubmissionEvent
from payouts.verifiers.base import PaymentVerifier

logger = structlog.get_logger()

FINISHED_REASON = "Campaign finished."

_CLOSABLE = (CampaignStatus.OPEN, CampaignStatus.PAUSED)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 50


class CampaignLifecycle:
    """Creator-driven changes to a campaign as a whole."""

    def __init__(self, ctx: EngineContext) -> None:
        self._ctx = ctx

    def create(self, creator_id: str, params: CampaignParams) -> Campaign:
        """Fund a new OPEN campaign whose remaining budget equals its total."""
        ctx = self._ctx
        campaign = Campaign(
            campaign_id=uuid.uuid4().hex,
            creator_id=creator_id,
            total_budget=params.total_budget,
            budget_remaining=params.total_budget,
            cpm_rate=params.cpm_rate,
            min_views=params.min_views,
            min_payout_threshold=params.min_payout_threshold,
            max_budget_per_user_percent=params.max_budget_per_user_percent,
            max_budget_per_post_percent=params.max_budget_per_post_percent,
            guidelines=params.guidelines,
            deadline_at=params.deadline_at,
            payment_token=params.payment_token,
            created_at=ctx.now(),
        )
        with ctx.store.transaction():
            ctx.store.insert_campaign(campaign)
            ctx.audit.log_campaign_created(
                campaign.campaign_id, creator_id, campaign.total_budget
            )

        logger.info(
            "Campaign created",
            campaign_id=campaign.campaign_id,
            creator_id=creator_id,
            total_budget=campaign.total_budget,
        )
        return campaign

    def pause(self, campaign_id: str, actor_id: str) -> Campaign:
        """Stop accepting submissions on an OPEN campaign."""
        return self._move(
            campaign_id, actor_id, CampaignStatus.OPEN, CampaignStatus.PAUSED, "pause it"
        )

    def resume(self, campaign_id: str, actor_id: str) -> Campaign:
        """Reopen a PAUSED campaign to submissions."""
        return self._move(
            campaign_id, actor_id, CampaignStatus.PAUSED, CampaignStatus.OPEN, "resume it"
        )

    def _move(
        self,
        campaign_id: str,
        actor_id: str,
        source: CampaignStatus,
        target: CampaignStatus,
        action: str,
    ) -> Campaign:
        ctx = self._ctx
        ctx.require_creator(campaign_id, actor_id, action)
        with ctx.store.transaction():
            moved = ctx.store.set_campaign_status(
                campaign_id, target, expected=[source], now=ctx.now()
            )
            if moved:
                ctx.audit.log_campaign_status(
                    campaign_id, actor_id, source.value, target.value
                )

        campaign = ctx.store.require_campaign(campaign_id)
        if not moved:
            raise PayoutError(
                ErrorCode.INVALID_STATUS,
                f"Campaign status is {campaign.status.value}, expected {source.value}",
                {"status": campaign.status.value},
            )
        logger.info("Campaign status changed", campaign_id=campaign_id, status=target.value)
        return campaign

    async def finish(
        self,
        campaign_id: str,
        actor_id: str,
        refund_proof: TransferProof | None = None,
        *,
        payments: PaymentVerifier | None = None,
    ) -> FinishResult:
        """Close a campaign to intake and settle its unbundled allocations.

        Every submission still APPROVED is rejected and its payout returned
        to the budget.  Bundled and paid submissions are left alone and can
        still be reconciled after the close.  The refund amount is whatever
        remains unallocated once those releases are applied.

        Args:
            campaign_id: The campaign to close.
            actor_id: Must be the campaign creator.
            refund_proof: Optional reference to the creator's refund transfer.
                Only its existence is verified.
            payments: Verifier for *refund_proof*; required when a proof is given.

        Returns:
            A :class:`FinishResult` summarising the close.

        Raises:
            PayoutError: ``NOT_FOUND``, ``FORBIDDEN``, ``INVALID_STATUS`` or a
                ``TX_*`` code for a bad refund proof.
        """
        ctx = self._ctx
        campaign = ctx.require_creator(campaign_id, actor_id, "finish the campaign")
        if campaign.status not in _CLOSABLE:
            raise PayoutError(
                ErrorCode.INVALID_STATUS,
                f"Campaign status is {campaign.status.value}, expected open or paused",
                {"status": campaign.status.value},
            )

        refund_ref = None
        if refund_proof is not None:
            if payments is None:
                raise PayoutError(
                    ErrorCode.CONFIG_ERROR, "No payment verifier configured for refund proofs"
                )
            await self._check_refund(payments, refund_proof)
            refund_ref = refund_proof.tx_ref

        outbox = ctx.outbox()
        released = 0
        auto_rejected = 0
        with ctx.store.transaction():
            if not ctx.store.set_campaign_status(
                campaign_id, CampaignStatus.COMPLETED, expected=_CLOSABLE, now=ctx.now()
            ):
                raise PayoutError(
                    ErrorCode.INVALID_STATUS, "Campaign was closed by a concurrent request"
                )

            approved = ctx.store.list_submissions(
                campaign_id, statuses=[SubmissionStatus.APPROVED]
            )
            for submission in approved:
                ctx.store.transition_submission(
                    submission.submission_id,
                    SubmissionEvent.CAMPAIGN_CLOSED,
                    now=ctx.now(),
                    rejection_reason=FINISHED_REASON,
                )
                amount = submission.payout_amount or 0
                if amount > 0:
                    ctx.budget.release(campaign_id, amount, now=ctx.now())
                    ctx.audit.log_release(campaign_id, submission.submission_id, amount)
                ctx.audit.log_submission_transition(
                    campaign_id,
                    submission.submission_id,
                    SubmissionStatus.APPROVED.value,
                    SubmissionStatus.REJECTED.value,
                    actor_id=actor_id,
                    reason=FINISHED_REASON,
                )
                released += amount
                auto_rejected += 1
                outbox.notify(
                    Notification(
                        user_id=submission.submitter_id,
                        type=NotificationType.SUBMISSION_REJECTED,
                        title="Campaign submission rejected",
                        body=(
                            "The campaign was finished before you requested payment "
                            "for this submission."
                        ),
                        link=campaign_link(campaign_id),
                    )
                )

            refund_amount = ctx.budget.remaining(campaign_id)
            ctx.store.record_refund(
                campaign_id, tx_ref=refund_ref, amount=refund_amount, now=ctx.now()
            )
            ctx.audit.log_campaign_finished(
                campaign_id, actor_id, refund_amount, auto_rejected, refund_tx_ref=refund_ref
            )

        BUDGET_RELEASED.inc(released)
        logger.info(
            "Campaign finished",
            campaign_id=campaign_id,
            auto_rejected=auto_rejected,
            released=released,
            refund_amount=refund_amount,
        )
        await outbox.flush()

        return FinishResult(
            campaign_id=campaign_id,
            status=CampaignStatus.COMPLETED,
            auto_rejected=auto_rejected,
            released_amount=released,
            refund_amount=refund_amount,
            refund_tx_ref=refund_ref,
        )

    async def _check_refund(self, payments: PaymentVerifier, proof: TransferProof) -> None:
        try:
            check = await self._ctx.bounded(payments.verify_confirmed(proof.tx_ref))
        except TimeoutError as exc:
            raise PayoutError(
                ErrorCode.TX_VERIFY_ERROR, "Timed out verifying the refund transaction"
            ) from exc
        if check.error is not None:
            raise PayoutError(check.error, check.message or "Refund transaction is invalid")

    def stats(self, campaign_id: str, caller_id: str) -> CampaignStats:
        """Aggregate budget, submission and caller totals for a campaign."""
        store = self._ctx.store
        campaign = store.require_campaign(campaign_id)
        counts = store.status_counts(campaign_id)

        return CampaignStats(
            total_budget=campaign.total_budget,
            budget_remaining=campaign.budget_remaining,
            budget_allocated=store.sum_payouts(campaign_id, ALLOCATED_STATES),
            budget_spent=store.sum_payouts(campaign_id, [SubmissionStatus.PAID]),
            cpm_rate=campaign.cpm_rate,
            min_views=campaign.min_views,
            total_submissions=sum(counts.values()),
            approved=counts.get(SubmissionStatus.APPROVED, 0),
            payment_requested=counts.get(SubmissionStatus.PAYMENT_REQUESTED, 0),
            paid=counts.get(SubmissionStatus.PAID, 0),
            rejected=sum(counts.get(s, 0) for s in REJECTED_STATES),
            pending=sum(counts.get(s, 0) for s in PROCESSING_STATES),
            total_engagement=store.total_engagement(campaign_id),
            caller_allocated=store.sum_payouts(
                campaign_id, ALLOCATED_STATES, submitter_id=caller_id
            ),
            caller_paid=store.sum_payouts(
                campaign_id, [SubmissionStatus.PAID], submitter_id=caller_id
            ),
        )

    def submissions(
        self,
        campaign_id: str,
        caller_id: str,
        *,
        status: SubmissionStatus | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> SubmissionPage:
        """Page through a campaign's submissions, newest first.

        The creator sees every submission; anyone else sees only their own.
        *page* is raised to at least 1 and *limit* is clamped to
        ``1..MAX_PAGE_SIZE``.

        Raises:
            PayoutError: ``NOT_FOUND`` if the campaign does not exist.
        """
        store = self._ctx.store
        campaign = store.require_campaign(campaign_id)
        submitter_id = None if campaign.creator_id == caller_id else caller_id
        statuses = [status] if status is not None else None
        page = max(1, page)
        limit = min(MAX_PAGE_SIZE, max(1, limit))

        total = store.count_submissions(
            campaign_id, submitter_id=submitter_id, statuses=statuses
        )
        rows = store.list_submissions(
            campaign_id,
            submitter_id=submitter_id,
            statuses=statuses,
            newest_first=True,
            limit=limit,
            offset=(page - 1) * limit,
        )
        return SubmissionPage(
            submissions=rows,
            page=page,
            limit=limit,
            total=total,
            pages=(total + limit - 1) // limit,
        )
