"""Mark a payment bundle paid against a confirmed external transfer."""

from __future__ import annotations

from datetime import datetime

import structlog

from payouts.domain.errors import ErrorCode, PayoutError
from payouts.domain.models import Campaign, PaymentBundle, Submission, TransferProof
from payouts.domain.types import BundleStatus, NotificationType, SubmissionStatus
from payouts.engine import EngineContext, campaign_link
from payouts.notifications import Notification, Outbox
from payouts.observability.metrics import BUNDLES_RECONCILED
from payouts.payments.fees import calculate_fee_split
from payouts.payments.referrals import ReferralDirectory
from payouts.state_machine.transitions import SubmissionEvent
from payouts.verifiers.base import PaymentVerifier

logger = structlog.get_logger()


class PaymentReconciler:
    """Settle PENDING bundles once their transfer is confirmed on chain.

    Args:
        ctx: Shared ledger, audit, configuration and clock.
        payments: Verifies that a transfer proof is confirmed and not failed.
        referrals: Referral links and earnings, used after the payment commits.
    """

    def __init__(
        self,
        ctx: EngineContext,
        *,
        payments: PaymentVerifier,
        referrals: ReferralDirectory,
    ) -> None:
        self._ctx = ctx
        self._payments = payments
        self._referrals = referrals

    async def reconcile(
        self,
        campaign_id: str,
        bundle_id: str,
        actor_id: str,
        proof: TransferProof,
    ) -> PaymentBundle:
        """Pay the bundle's *current* members with the proof's transfer.

        Members pulled out by a creator reject since the bundle was created
        are excluded; the bundle total is recomputed from what is left in the
        same transaction that marks the members paid.  A failed proof leaves
        the bundle PENDING so a new proof can be submitted.

        Args:
            campaign_id: Campaign the bundle belongs to.
            bundle_id: The PENDING bundle to settle.
            actor_id: Must be the campaign creator.
            proof: The external transfer that paid the bundle.

        Returns:
            The PAID bundle.

        Raises:
            PayoutError: ``FORBIDDEN``, ``NOT_FOUND``, ``INVALID_STATUS``,
                ``NO_SUBMISSIONS``, ``DUPLICATE``, ``TX_NOT_FOUND``,
                ``TX_FAILED`` or ``TX_VERIFY_ERROR``.
        """
        ctx = self._ctx
        campaign = ctx.require_creator(campaign_id, actor_id, "confirm payments")
        bundle = ctx.store.get_bundle(bundle_id)
        if bundle is None or bundle.campaign_id != campaign_id:
            raise PayoutError(ErrorCode.NOT_FOUND, "Payment request not found")
        if bundle.status != BundleStatus.PENDING:
            raise PayoutError(
                ErrorCode.INVALID_STATUS,
                f"Payment request is {bundle.status.value}, expected pending",
                {"status": bundle.status.value},
            )
        if not self._current_members(bundle):
            raise PayoutError(
                ErrorCode.NO_SUBMISSIONS, "Payment request has no submissions left to pay"
            )
        if ctx.store.payment_proof_in_use(proof.tx_ref):
            raise PayoutError(
                ErrorCode.DUPLICATE,
                "This transaction has already been used for another payment request",
            )

        await self._verify(proof)

        paid_at = ctx.now()
        with ctx.store.transaction():
            members = self._current_members(bundle)
            if not members:
                raise PayoutError(
                    ErrorCode.NO_SUBMISSIONS, "Payment request has no submissions left to pay"
                )
            total = sum(m.payout_amount or 0 for m in members)
            ctx.store.set_bundle_total(bundle_id, total)
            if not ctx.store.set_bundle_status(
                bundle_id,
                BundleStatus.PAID,
                expected=BundleStatus.PENDING,
                payment_tx_ref=proof.tx_ref,
                sequence_index=proof.sequence_index,
                paid_at=paid_at,
            ):
                raise PayoutError(
                    ErrorCode.INVALID_STATUS, "Payment request is no longer pending"
                )

            for member in members:
                ctx.store.transition_submission(
                    member.submission_id,
                    SubmissionEvent.MARK_PAID,
                    now=paid_at,
                    payment_tx_ref=proof.tx_ref,
                    payment_sequence_index=proof.sequence_index,
                )
                ctx.audit.log_submission_transition(
                    campaign_id,
                    member.submission_id,
                    SubmissionStatus.PAYMENT_REQUESTED.value,
                    SubmissionStatus.PAID.value,
                    actor_id=actor_id,
                )
            ctx.audit.log_bundle_reconciled(
                campaign_id, bundle_id, actor_id, total, proof.tx_ref, len(members)
            )

        BUNDLES_RECONCILED.inc()
        logger.info(
            "Payment bundle reconciled",
            campaign_id=campaign_id,
            bundle_id=bundle_id,
            tx_ref=proof.tx_ref,
            total=total,
            paid_submissions=len(members),
        )

        outbox = ctx.outbox()
        outbox.defer(
            "referral_split",
            lambda: self._record_referral(bundle, total, proof.tx_ref),
        )
        self._notify_paid(outbox, campaign, bundle, total, paid_at)
        await outbox.flush()

        return ctx.store.require_bundle(bundle_id)

    def _current_members(self, bundle: PaymentBundle) -> list[Submission]:
        return self._ctx.store.list_submissions(
            bundle.campaign_id,
            statuses=[SubmissionStatus.PAYMENT_REQUESTED],
            bundle_id=bundle.bundle_id,
        )

    async def _verify(self, proof: TransferProof) -> None:
        try:
            check = await self._ctx.bounded(self._payments.verify_confirmed(proof.tx_ref))
        except TimeoutError as exc:
            raise PayoutError(
                ErrorCode.TX_VERIFY_ERROR, "Timed out verifying the payment transaction"
            ) from exc
        if check.error is not None:
            logger.warning(
                "Payment proof rejected", tx_ref=proof.tx_ref, error=check.error.value
            )
            raise PayoutError(check.error, check.message or "Payment transaction is invalid")

    def _record_referral(self, bundle: PaymentBundle, total: int, tx_ref: str) -> None:
        link = self._referrals.get_active_link(bundle.requester_id)
        if link is None:
            return
        split = calculate_fee_split(
            total, link.referrer_fee_pct, self._ctx.config.platform_fee_bps
        )
        if split.referrer <= 0:
            return
        self._referrals.record_earning(
            link,
            campaign_id=bundle.campaign_id,
            bundle_id=bundle.bundle_id,
            total_amount=total,
            split=split,
            tx_ref=tx_ref,
        )
        logger.info(
            "Referral earning recorded",
            referrer_id=link.referrer_id,
            bundle_id=bundle.bundle_id,
            referrer_amount=split.referrer,
        )

    def _notify_paid(
        self,
        outbox: Outbox,
        campaign: Campaign,
        bundle: PaymentBundle,
        total: int,
        paid_at: datetime,
    ) -> None:
        amount = campaign.payment_token.format_amount(total)
        link = campaign_link(campaign.campaign_id)
        outbox.notify(
            Notification(
                user_id=bundle.requester_id,
                type=NotificationType.PAYMENT_COMPLETED,
                title="Campaign payment sent",
                body=f"You were paid {amount} for your campaign submissions.",
                link=link,
            )
        )
        outbox.notify(
            Notification(
                user_id=campaign.creator_id,
                type=NotificationType.PAYMENT_COMPLETED,
                title="Campaign payment recorded",
                body=f"Payment of {amount} recorded on {paid_at:%Y-%m-%d %H:%M} UTC.",
                link=link,
            )
        )
