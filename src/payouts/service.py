"""Facade exposing every payout operation behind one object.

The HTTP layer and tests talk to :class:`PayoutService`; each method
delegates to the component that owns the operation.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from datetime import datetime

from payouts.audit.logger import AuditLogger
from payouts.audit.store import init_audit_schema
from payouts.config import PayoutConfig
from payouts.domain.models import (
    Campaign,
    CampaignParams,
    CampaignStats,
    FinishResult,
    PaymentBundle,
    Submission,
    SubmissionPage,
    TransferProof,
)
from payouts.domain.types import SubmissionStatus
from payouts.engine import EngineContext, utc_now
from payouts.intake.pipeline import SubmissionIntake
from payouts.ledger.schema import init_ledger_schema
from payouts.ledger.store import LedgerStore
from payouts.lifecycle.campaigns import DEFAULT_PAGE_SIZE, CampaignLifecycle
from payouts.lifecycle.controls import CreatorControls
from payouts.notifications import LedgerNotificationSink, NotificationSink
from payouts.payments.bundler import PaymentBundler
from payouts.payments.reconciler import PaymentReconciler
from payouts.payments.referrals import LedgerReferralDirectory, ReferralDirectory
from payouts.verifiers.base import (
    ContentVerifier,
    IdentityVerifier,
    MetricsVerifier,
    PaymentVerifier,
)


def bootstrap_ledger(conn: sqlite3.Connection) -> None:
    """Create the ledger and audit tables on *conn*."""
    init_ledger_schema(conn)
    init_audit_schema(conn)


class PayoutService:
    """Campaign engagement payouts: intake, creator controls, payments, lifecycle.

    Args:
        conn: Ledger connection with the schema already created
            (see :func:`bootstrap_ledger`).
        config: Fee and timing parameters.
        identity: Linked-account lookup.
        metrics: Post metrics and authorship source.
        content: Guideline compliance checker.
        payments: Transfer verifier for fees, payouts and refunds.
        referrals: Referral directory; defaults to the ledger's own tables.
        sink: Notification sink; defaults to the ledger's notifications table.
        clock: Source of "now", replaceable in tests.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        config: PayoutConfig,
        *,
        identity: IdentityVerifier,
        metrics: MetricsVerifier,
        content: ContentVerifier,
        payments: PaymentVerifier,
        referrals: ReferralDirectory | None = None,
        sink: NotificationSink | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        store = LedgerStore(conn)
        self.ctx = EngineContext(
            store=store,
            config=config,
            sink=sink or LedgerNotificationSink(conn, clock),
            audit=AuditLogger(conn, clock),
            clock=clock,
        )
        self._payments = payments
        self._intake = SubmissionIntake(
            self.ctx,
            identity=identity,
            metrics=metrics,
            content=content,
            payments=payments,
        )
        self._controls = CreatorControls(self.ctx)
        self._lifecycle = CampaignLifecycle(self.ctx)
        self._bundler = PaymentBundler(self.ctx)
        self._reconciler = PaymentReconciler(
            self.ctx,
            payments=payments,
            referrals=referrals or LedgerReferralDirectory(conn, clock),
        )

    @property
    def store(self) -> LedgerStore:
        return self.ctx.store

    # -- Campaigns -------------------------------------------------------------

    def create_campaign(self, creator_id: str, params: CampaignParams) -> Campaign:
        return self._lifecycle.create(creator_id, params)

    def pause_campaign(self, campaign_id: str, actor_id: str) -> Campaign:
        return self._lifecycle.pause(campaign_id, actor_id)

    def resume_campaign(self, campaign_id: str, actor_id: str) -> Campaign:
        return self._lifecycle.resume(campaign_id, actor_id)

    async def finish_campaign(
        self,
        campaign_id: str,
        actor_id: str,
        refund_proof: TransferProof | None = None,
    ) -> FinishResult:
        return await self._lifecycle.finish(
            campaign_id, actor_id, refund_proof, payments=self._payments
        )

    def get_campaign_stats(self, campaign_id: str, caller_id: str) -> CampaignStats:
        return self._lifecycle.stats(campaign_id, caller_id)

    # -- Submissions -----------------------------------------------------------

    async def submit_engagement(
        self, campaign_id: str, submitter_id: str, post_url: str, fee_tx_ref: str
    ) -> Submission:
        return await self._intake.submit(campaign_id, submitter_id, post_url, fee_tx_ref)

    def list_submissions(
        self,
        campaign_id: str,
        caller_id: str,
        *,
        status: SubmissionStatus | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> SubmissionPage:
        return self._lifecycle.submissions(
            campaign_id, caller_id, status=status, page=page, limit=limit
        )

    async def reject_submission(
        self,
        submission_id: str,
        actor_id: str,
        reason: str | None,
        *,
        ban_submitter: bool = False,
        campaign_id: str | None = None,
    ) -> Submission:
        return await self._controls.reject(
            submission_id,
            actor_id,
            reason,
            ban_submitter=ban_submitter,
            campaign_id=campaign_id,
        )

    async def override_approve(
        self, submission_id: str, actor_id: str, *, campaign_id: str | None = None
    ) -> Submission:
        return await self._controls.override_approve(
            submission_id, actor_id, campaign_id=campaign_id
        )

    # -- Payments --------------------------------------------------------------

    async def request_payment(self, campaign_id: str, requester_id: str) -> PaymentBundle:
        return await self._bundler.request_payment(campaign_id, requester_id)

    def list_payment_requests(self, campaign_id: str, caller_id: str) -> list[PaymentBundle]:
        return self._bundler.list_requests(campaign_id, caller_id)

    async def reconcile_payment(
        self,
        campaign_id: str,
        bundle_id: str,
        actor_id: str,
        proof: TransferProof,
    ) -> PaymentBundle:
        return await self._reconciler.reconcile(campaign_id, bundle_id, actor_id, proof)
