"""Submission intake: verify an engagement claim and allocate its payout.

The pipeline runs the checks in a fixed order.  Up to and including the fee
check, a failure leaves no trace.  Once the fee is verified a submission row
exists, and every later failure moves that same row to REJECTED with the
reason, so a caller can always see why a claim did not pay.
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Any

import structlog

from payouts.domain.errors import ErrorCode, IdentityExpiredError, PayoutError
from payouts.domain.models import Campaign, Submission
from payouts.domain.types import (
    PROCESSING_STATES,
    CampaignStatus,
    NotificationType,
    SubmissionStatus,
    TaskType,
)
from payouts.engine import EngineContext, campaign_link
from payouts.intake.post_ref import PostRef, parse_post_url
from payouts.ledger.budget import capped_request, raw_payout
from payouts.notifications import Notification, Outbox
from payouts.observability.metrics import BUDGET_ALLOCATED, SUBMISSION_OUTCOMES
from payouts.state_machine.transitions import SubmissionEvent
from payouts.verifiers.base import (
    ContentVerdict,
    ContentVerifier,
    IdentityVerifier,
    LinkedIdentity,
    MetricsVerifier,
    PaymentVerifier,
    PostMetrics,
)

logger = structlog.get_logger()


class SubmissionIntake:
    """Run one engagement claim from URL to APPROVED (or a recorded rejection).

    Args:
        ctx: Shared ledger, audit, configuration and clock.
        identity: Linked-account lookup.
        metrics: Post metrics and authorship source.
        content: Guideline compliance checker.
        payments: Transfer verifier for the anti-spam fee.
    """

    def __init__(
        self,
        ctx: EngineContext,
        *,
        identity: IdentityVerifier,
        metrics: MetricsVerifier,
        content: ContentVerifier,
        payments: PaymentVerifier,
    ) -> None:
        self._ctx = ctx
        self._identity = identity
        self._metrics = metrics
        self._content = content
        self._payments = payments

    async def submit(
        self, campaign_id: str, submitter_id: str, post_url: str, fee_tx_ref: str
    ) -> Submission:
        """Submit a post for payout.

        Returns:
            The APPROVED submission with its allocated payout.

        Raises:
            PayoutError: For every failure; past the fee check the details
                carry the ``submission_id`` of the rejected row.
        """
        log = logger.bind(campaign_id=campaign_id, submitter_id=submitter_id)
        try:
            submission = await self._run(campaign_id, submitter_id, post_url, fee_tx_ref)
        except PayoutError as exc:
            SUBMISSION_OUTCOMES.labels(outcome=exc.code.value).inc()
            log.info("Submission refused", code=exc.code.value, reason=exc.message)
            raise
        SUBMISSION_OUTCOMES.labels(outcome="approved").inc()
        log.info(
            "Submission approved",
            submission_id=submission.submission_id,
            payout_amount=submission.payout_amount,
        )
        return submission

    async def _run(
        self, campaign_id: str, submitter_id: str, post_url: str, fee_tx_ref: str
    ) -> Submission:
        ctx = self._ctx
        fee_tx_ref = fee_tx_ref.strip()
        if not fee_tx_ref:
            raise PayoutError(ErrorCode.VALIDATION_ERROR, "Required: post_url, fee_tx_ref")
        post = parse_post_url(post_url)

        identity = await self._linked_identity(submitter_id)
        campaign = self._open_campaign(campaign_id, submitter_id)
        self._clear_stuck(campaign_id, post)

        if campaign.budget_remaining <= 0:
            raise PayoutError(
                ErrorCode.BUDGET_EXHAUSTED, "The campaign budget has been fully allocated"
            )

        await self._verify_fee(fee_tx_ref)
        submission = self._create(campaign, submitter_id, post, fee_tx_ref)

        outbox = ctx.outbox()
        try:
            metrics = await self._read_metrics(submission, identity)
            verdict = await self._check_content(submission, campaign, metrics, outbox)
            return self._approve(submission, campaign, metrics, verdict, outbox)
        finally:
            await outbox.flush()

    # ------------------------------------------------------------------
    # Steps before the submission row exists
    # ------------------------------------------------------------------

    async def _linked_identity(self, submitter_id: str) -> LinkedIdentity:
        try:
            identity = await self._ctx.bounded(self._identity.get_identity(submitter_id))
        except IdentityExpiredError as exc:
            raise PayoutError(ErrorCode.IDENTITY_EXPIRED, str(exc)) from exc
        except TimeoutError as exc:
            raise PayoutError(
                ErrorCode.EXTERNAL_API_ERROR, "Timed out looking up linked X account"
            ) from exc
        if identity is None:
            raise PayoutError(
                ErrorCode.IDENTITY_NOT_LINKED,
                "You must link your X account before submitting to campaigns",
            )
        return identity

    def _open_campaign(self, campaign_id: str, submitter_id: str) -> Campaign:
        campaign = self._ctx.store.get_campaign(campaign_id)
        if campaign is None:
            raise PayoutError(ErrorCode.NOT_FOUND, "Task not found")
        if campaign.task_type != TaskType.CAMPAIGN:
            raise PayoutError(
                ErrorCode.INVALID_TYPE, "This endpoint is only for CAMPAIGN tasks"
            )
        if campaign.status != CampaignStatus.OPEN:
            raise PayoutError(
                ErrorCode.CLOSED, "This campaign is no longer accepting submissions"
            )
        if campaign.deadline_at is not None and self._ctx.now() > campaign.deadline_at:
            raise PayoutError(ErrorCode.DEADLINE_PASSED, "The campaign deadline has passed")
        if campaign.creator_id == submitter_id:
            raise PayoutError(ErrorCode.OWN_CAMPAIGN, "You cannot submit to your own campaign")
        if self._ctx.store.is_banned(campaign.creator_id, submitter_id):
            raise PayoutError(
                ErrorCode.BANNED, "You have been banned from this creator's campaigns"
            )
        return campaign

    def _clear_stuck(self, campaign_id: str, post: PostRef) -> None:
        store = self._ctx.store
        existing = store.find_submission_by_post(campaign_id, post.post_id)
        if existing is None:
            return

        if existing.status in PROCESSING_STATES:
            lease = timedelta(seconds=self._ctx.config.stuck_lease_seconds)
            stale_before = self._ctx.now() - lease
            with store.transaction():
                reclaimed = store.reclaim_stuck_submission(
                    campaign_id, post.post_id, stale_before=stale_before
                )
                if reclaimed:
                    self._ctx.audit.log_error(
                        campaign_id,
                        "Stuck submission reclaimed for retry",
                        context=existing.status.value,
                        submission_id=existing.submission_id,
                    )
            if reclaimed:
                logger.info(
                    "Reclaimed stuck submission",
                    submission_id=existing.submission_id,
                    status=existing.status.value,
                )
                return

        raise PayoutError(
            ErrorCode.DUPLICATE,
            "This post has already been submitted to this campaign",
            {"submission_id": existing.submission_id},
        )

    async def _verify_fee(self, fee_tx_ref: str) -> None:
        config = self._ctx.config
        if not config.system_address:
            raise PayoutError(ErrorCode.CONFIG_ERROR, "System wallet not configured")
        if self._ctx.store.fee_proof_in_use(fee_tx_ref):
            raise PayoutError(
                ErrorCode.INVALID_PAYMENT,
                "This fee payment has already been used for another submission",
            )

        try:
            check = await self._ctx.bounded(
                self._payments.verify_transfer(
                    fee_tx_ref, config.system_address, config.anti_spam_fee_amount
                )
            )
        except TimeoutError as exc:
            raise PayoutError(
                ErrorCode.INVALID_PAYMENT, "Fee payment verification timed out"
            ) from exc
        if not check.ok:
            raise PayoutError(
                ErrorCode.INVALID_PAYMENT,
                check.message or "Fee payment verification failed",
            )

    def _create(
        self, campaign: Campaign, submitter_id: str, post: PostRef, fee_tx_ref: str
    ) -> Submission:
        ctx = self._ctx
        now = ctx.now()
        submission = Submission(
            submission_id=str(uuid.uuid4()),
            campaign_id=campaign.campaign_id,
            submitter_id=submitter_id,
            platform=post.platform,
            post_id=post.post_id,
            post_url=post.url,
            fee_tx_ref=fee_tx_ref,
            status=SubmissionStatus.READING_VIEWS,
            created_at=now,
            updated_at=now,
        )
        with ctx.store.transaction():
            ctx.store.insert_submission(submission)
            ctx.audit.log_submission_transition(
                campaign.campaign_id,
                submission.submission_id,
                None,
                SubmissionStatus.READING_VIEWS.value,
                actor_id=submitter_id,
            )
        return submission

    # ------------------------------------------------------------------
    # Steps that update the submission row
    # ------------------------------------------------------------------

    def _reject(
        self,
        submission: Submission,
        code: ErrorCode,
        message: str,
        reason: str,
        details: dict[str, Any] | None = None,
        **fields: Any,
    ) -> PayoutError:
        """Move the submission to REJECTED and build the error to raise."""
        ctx = self._ctx
        with ctx.store.transaction():
            updated = ctx.store.transition_submission(
                submission.submission_id,
                SubmissionEvent.REJECT,
                now=ctx.now(),
                rejection_reason=reason,
                **fields,
            )
            ctx.audit.log_submission_transition(
                submission.campaign_id,
                submission.submission_id,
                submission.status.value,
                updated.status.value,
                reason=reason,
            )
        return PayoutError(
            code, message, {"submission_id": submission.submission_id, **(details or {})}
        )

    async def _read_metrics(
        self, submission: Submission, identity: LinkedIdentity
    ) -> PostMetrics:
        try:
            metrics = await self._ctx.bounded(
                self._metrics.fetch_post(submission.post_id, identity.access_token)
            )
        except TimeoutError as exc:
            raise self._reject(
                submission,
                ErrorCode.EXTERNAL_API_ERROR,
                "Failed to read post metrics: timed out",
                "Failed to read post metrics: timed out",
            ) from exc
        except Exception as exc:
            logger.warning(
                "Metrics fetch failed", submission_id=submission.submission_id, error=str(exc)
            )
            message = f"Failed to read post metrics: {exc}"
            raise self._reject(
                submission, ErrorCode.EXTERNAL_API_ERROR, message, message
            ) from exc

        if metrics.author_id != identity.platform_user_id:
            raise self._reject(
                submission,
                ErrorCode.NOT_POST_OWNER,
                "The submitted post does not belong to your linked X account",
                "The submitted post does not belong to your linked X account.",
                engagement_count=metrics.engagement_count,
            )

        campaign = self._ctx.store.require_campaign(submission.campaign_id)
        if metrics.engagement_count < campaign.min_views:
            raise self._reject(
                submission,
                ErrorCode.INSUFFICIENT_ENGAGEMENT,
                f"Post has {metrics.engagement_count} views, "
                f"minimum required is {campaign.min_views}",
                f"Post has {metrics.engagement_count} views, "
                f"minimum required is {campaign.min_views}.",
                {"engagement_count": metrics.engagement_count, "min_views": campaign.min_views},
                engagement_count=metrics.engagement_count,
            )

        ctx = self._ctx
        with ctx.store.transaction():
            updated = ctx.store.transition_submission(
                submission.submission_id,
                SubmissionEvent.METRICS_READ,
                now=ctx.now(),
                engagement_count=metrics.engagement_count,
            )
            ctx.audit.log_submission_transition(
                submission.campaign_id,
                submission.submission_id,
                submission.status.value,
                updated.status.value,
            )
        return metrics

    async def _check_content(
        self,
        submission: Submission,
        campaign: Campaign,
        metrics: PostMetrics,
        outbox: Outbox,
    ) -> ContentVerdict:
        checking = submission.model_copy(update={"status": SubmissionStatus.CHECKING_CONTENT})
        try:
            verdict = await self._ctx.bounded(
                self._content.check(metrics.text, metrics.media, campaign.guidelines)
            )
        except Exception as exc:
            logger.warning(
                "Content check failed", submission_id=submission.submission_id, error=repr(exc)
            )
            detail = "timed out" if isinstance(exc, TimeoutError) else str(exc)
            raise self._reject(
                checking,
                ErrorCode.CONTENT_CHECK_ERROR,
                f"Content check service error: {detail}",
                f"Content check failed: {detail}",
            ) from exc

        if not verdict.passed:
            outbox.notify(
                Notification(
                    user_id=submission.submitter_id,
                    type=NotificationType.SUBMISSION_REJECTED,
                    title="Campaign submission rejected",
                    body=f"Your post did not meet the campaign guidelines: {verdict.explanation}",
                    link=campaign_link(campaign.campaign_id),
                )
            )
            raise self._reject(
                checking,
                ErrorCode.CONTENT_REJECTED,
                "Your post does not meet the campaign guidelines",
                verdict.explanation,
                {"explanation": verdict.explanation, "engagement_count": metrics.engagement_count},
                content_check_passed=False,
                content_check_explanation=verdict.explanation,
            )
        return verdict

    def _approve(
        self,
        submission: Submission,
        campaign: Campaign,
        metrics: PostMetrics,
        verdict: ContentVerdict,
        outbox: Outbox,
    ) -> Submission:
        ctx = self._ctx
        checking = submission.model_copy(update={"status": SubmissionStatus.CHECKING_CONTENT})
        raw = raw_payout(metrics.engagement_count, campaign.cpm_rate)
        checked = {
            "content_check_passed": True,
            "content_check_explanation": verdict.explanation,
        }

        # Rejections are committed with this transaction, then raised.
        failure: PayoutError | None = None
        with ctx.store.transaction():
            current = ctx.store.require_campaign(campaign.campaign_id)
            try:
                requested = capped_request(ctx.store, current, submission.submitter_id, raw)
            except PayoutError as exc:
                failure = self._reject(
                    checking,
                    exc.code,
                    exc.message,
                    "Per-user payout cap reached for this campaign.",
                    exc.details,
                    **checked,
                )
                requested = 0

            granted = 0
            if failure is None:
                granted = ctx.budget.try_allocate(campaign.campaign_id, requested, now=ctx.now())
                if granted <= 0:
                    failure = self._reject(
                        checking,
                        ErrorCode.BUDGET_EXHAUSTED,
                        "Campaign budget has been exhausted",
                        "Campaign budget has been exhausted.",
                        **checked,
                    )

            if failure is None:
                approved = ctx.store.transition_submission(
                    submission.submission_id,
                    SubmissionEvent.APPROVE,
                    now=ctx.now(),
                    payout_amount=granted,
                    **checked,
                )
                ctx.audit.log_allocation(
                    campaign.campaign_id, submission.submission_id, raw, granted
                )
                ctx.audit.log_submission_transition(
                    campaign.campaign_id,
                    submission.submission_id,
                    SubmissionStatus.CHECKING_CONTENT.value,
                    approved.status.value,
                )

        if failure is not None:
            raise failure

        BUDGET_ALLOCATED.inc(granted)
        payout = campaign.payment_token.format_amount(granted)
        outbox.notify(
            Notification(
                user_id=campaign.creator_id,
                type=NotificationType.PAYMENT_REQUEST,
                title="New campaign payout request",
                body=(
                    f"A post with {metrics.engagement_count} views was approved. "
                    f"Payout: {payout}"
                ),
                link=campaign_link(campaign.campaign_id),
            )
        )
        outbox.notify(
            Notification(
                user_id=submission.submitter_id,
                type=NotificationType.SUBMISSION_APPROVED,
                title="Campaign submission approved!",
                body=(
                    f"Your post was approved with {metrics.engagement_count} views. "
                    f"Pending payout: {payout}"
                ),
                link=campaign_link(campaign.campaign_id),
            )
        )
        return approved
