"""Aggregate a requester's approved submissions into one payment bundle."""

from __future__ import annotations

import uuid

import structlog

from payouts.domain.errors import ErrorCode, PayoutError
from payouts.domain.models import PaymentBundle
from payouts.domain.types import NotificationType, SubmissionStatus
from payouts.engine import EngineContext, campaign_link
from payouts.notifications import Notification
from payouts.state_machine.transitions import SubmissionEvent

logger = structlog.get_logger()


class PaymentBundler:
    """Create and list payment requests for a campaign."""

    def __init__(self, ctx: EngineContext) -> None:
        self._ctx = ctx

    async def request_payment(self, campaign_id: str, requester_id: str) -> PaymentBundle:
        """Bundle every APPROVED submission the requester holds in the campaign.

        The bundle and the APPROVED -> PAYMENT_REQUESTED moves are written in
        one transaction.  A requester can hold only one PENDING bundle per
        campaign; the store's unique index rejects a second.

        Args:
            campaign_id: The campaign to request payment from.
            requester_id: The submitter asking to be paid.

        Returns:
            The new PENDING bundle.

        Raises:
            PayoutError: ``NOT_FOUND``, ``OWN_CAMPAIGN``, ``NO_SUBMISSIONS``,
                ``BELOW_THRESHOLD`` or ``BUNDLE_PENDING``.
        """
        ctx = self._ctx
        campaign = ctx.store.require_campaign(campaign_id)
        if campaign.creator_id == requester_id:
            raise PayoutError(
                ErrorCode.OWN_CAMPAIGN, "You cannot request payment from your own campaign"
            )

        bundle_id = uuid.uuid4().hex
        with ctx.store.transaction():
            approved = ctx.store.list_submissions(
                campaign_id,
                submitter_id=requester_id,
                statuses=[SubmissionStatus.APPROVED],
            )
            if not approved:
                raise PayoutError(
                    ErrorCode.NO_SUBMISSIONS,
                    "You have no approved submissions to request payment for",
                )

            total = sum(s.payout_amount or 0 for s in approved)
            threshold = campaign.min_payout_threshold
            if threshold > 0 and total < threshold:
                raise PayoutError(
                    ErrorCode.BELOW_THRESHOLD,
                    "Your approved payouts are below the campaign's minimum payout: "
                    f"{campaign.payment_token.format_amount(total)} < "
                    f"{campaign.payment_token.format_amount(threshold)}",
                    {"total": total, "min_payout_threshold": threshold},
                )

            ctx.store.insert_bundle(
                bundle_id=bundle_id,
                campaign_id=campaign_id,
                requester_id=requester_id,
                total_amount=total,
                now=ctx.now(),
            )
            for submission in approved:
                ctx.store.transition_submission(
                    submission.submission_id,
                    SubmissionEvent.REQUEST_PAYMENT,
                    now=ctx.now(),
                    bundle_id=bundle_id,
                )
                ctx.audit.log_submission_transition(
                    campaign_id,
                    submission.submission_id,
                    SubmissionStatus.APPROVED.value,
                    SubmissionStatus.PAYMENT_REQUESTED.value,
                    actor_id=requester_id,
                )
            ctx.audit.log_bundle_created(
                campaign_id, bundle_id, requester_id, total, len(approved)
            )

        logger.info(
            "Payment requested",
            campaign_id=campaign_id,
            bundle_id=bundle_id,
            requester_id=requester_id,
            total=total,
            submissions=len(approved),
        )

        outbox = ctx.outbox()
        outbox.notify(
            Notification(
                user_id=campaign.creator_id,
                type=NotificationType.PAYMENT_REQUEST,
                title="Campaign payment requested",
                body=(
                    f"A participant requested payment of "
                    f"{campaign.payment_token.format_amount(total)} "
                    f"for {len(approved)} approved submission(s)."
                ),
                link=campaign_link(campaign_id),
            )
        )
        await outbox.flush()

        return ctx.store.require_bundle(bundle_id)

    def list_requests(self, campaign_id: str, caller_id: str) -> list[PaymentBundle]:
        """List a campaign's bundles: all of them for the creator, own ones otherwise."""
        campaign = self._ctx.store.require_campaign(campaign_id)
        if campaign.creator_id == caller_id:
            return self._ctx.store.list_bundles(campaign_id)
        return self._ctx.store.list_bundles(campaign_id, requester_id=caller_id)
