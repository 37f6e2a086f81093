"""Tests for campaign create, pause/resume, finish and stats."""

from __future__ import annotations

import asyncio

import pytest
from conftest import ALICE, BOB, CREATOR, PayoutWorld

from payouts.audit.store import query_audit_trail
from payouts.domain.errors import ErrorCode, PayoutError
from payouts.domain.models import FinishResult, TransferProof
from payouts.domain.types import (
    BundleStatus,
    CampaignStatus,
    NotificationType,
    SubmissionStatus,
)
from payouts.lifecycle import FINISHED_REASON
from payouts.verifiers.base import ContentVerdict, TransferCheck


def _finish(
    world: PayoutWorld,
    campaign_id: str,
    proof: TransferProof | None = None,
    actor: str = CREATOR,
) -> FinishResult:
    return asyncio.run(world.service.finish_campaign(campaign_id, actor, proof))


class TestCreate:
    def test_funded_and_open(self, world: PayoutWorld) -> None:
        campaign = world.campaign(total_budget=250_000, min_views=100)

        stored = world.store.require_campaign(campaign.campaign_id)
        assert stored.status == CampaignStatus.OPEN
        assert stored.creator_id == CREATOR
        assert stored.budget_remaining == stored.total_budget == 250_000
        assert stored.min_views == 100
        assert stored.created_at == world.clock.now

    def test_audited(self, world: PayoutWorld) -> None:
        campaign = world.campaign()
        [entry] = query_audit_trail(world.conn, campaign_id=campaign.campaign_id)
        assert entry["event_type"] == "campaign_created"
        assert entry["amount"] == 1_000_000


class TestPauseResume:
    def test_pause_blocks_intake_and_resume_reopens(self, world: PayoutWorld) -> None:
        campaign = world.campaign()

        paused = world.service.pause_campaign(campaign.campaign_id, CREATOR)
        assert paused.status == CampaignStatus.PAUSED
        with pytest.raises(PayoutError) as exc_info:
            world.approved(campaign.campaign_id, 1_000)
        assert exc_info.value.code == ErrorCode.CLOSED

        resumed = world.service.resume_campaign(campaign.campaign_id, CREATOR)
        assert resumed.status == CampaignStatus.OPEN
        assert world.approved(campaign.campaign_id, 1_000).status == SubmissionStatus.APPROVED

    def test_pause_twice(self, world: PayoutWorld) -> None:
        campaign = world.campaign()
        world.service.pause_campaign(campaign.campaign_id, CREATOR)
        with pytest.raises(PayoutError) as exc_info:
            world.service.pause_campaign(campaign.campaign_id, CREATOR)
        assert exc_info.value.code == ErrorCode.INVALID_STATUS
        assert exc_info.value.details == {"status": "paused"}

    def test_resume_open_campaign(self, world: PayoutWorld) -> None:
        campaign = world.campaign()
        with pytest.raises(PayoutError) as exc_info:
            world.service.resume_campaign(campaign.campaign_id, CREATOR)
        assert exc_info.value.code == ErrorCode.INVALID_STATUS

    def test_only_creator(self, world: PayoutWorld) -> None:
        campaign = world.campaign()
        with pytest.raises(PayoutError) as exc_info:
            world.service.pause_campaign(campaign.campaign_id, ALICE)
        assert exc_info.value.code == ErrorCode.FORBIDDEN


class TestFinish:
    def test_rejects_unbundled_and_refunds_remaining(self, world: PayoutWorld) -> None:
        campaign = world.campaign(total_budget=50_000)
        submission = world.approved(campaign.campaign_id, 4_000)
        assert world.store.require_campaign(campaign.campaign_id).budget_remaining == 10_000

        result = _finish(world, campaign.campaign_id)

        assert result.status == CampaignStatus.COMPLETED
        assert result.auto_rejected == 1
        assert result.released_amount == 40_000
        assert result.refund_amount == 50_000
        rejected = world.store.get_submission(submission.submission_id)
        assert rejected.status == SubmissionStatus.REJECTED
        assert rejected.rejection_reason == FINISHED_REASON
        stored = world.store.require_campaign(campaign.campaign_id)
        assert stored.status == CampaignStatus.COMPLETED
        assert stored.budget_remaining == 50_000
        assert stored.refund_amount == 50_000

    def test_notifies_auto_rejected(self, world: PayoutWorld) -> None:
        campaign = world.campaign()
        world.approved(campaign.campaign_id, 1_000)
        world.sink.notifications.clear()

        _finish(world, campaign.campaign_id)

        [note] = world.sink.for_user(ALICE)
        assert note.type == NotificationType.SUBMISSION_REJECTED

    def test_bundled_submissions_stay_allocated(self, world: PayoutWorld) -> None:
        campaign = world.campaign()
        world.approved(campaign.campaign_id, 3_000)
        bundle = asyncio.run(world.service.request_payment(campaign.campaign_id, ALICE))
        world.approved(campaign.campaign_id, 2_000, submitter=BOB)

        result = _finish(world, campaign.campaign_id)

        assert result.auto_rejected == 1
        assert result.released_amount == 20_000
        assert result.refund_amount == 970_000
        assert world.store.get_bundle(bundle.bundle_id).status == BundleStatus.PENDING

    def test_records_refund_proof(self, world: PayoutWorld) -> None:
        campaign = world.campaign()

        result = _finish(world, campaign.campaign_id, TransferProof(tx_ref="refund-tx"))

        assert result.refund_tx_ref == "refund-tx"
        assert world.store.require_campaign(campaign.campaign_id).refund_tx_ref == "refund-tx"
        [entry] = query_audit_trail(
            world.conn, campaign_id=campaign.campaign_id, event_type="campaign_finished"
        )
        assert entry["metadata"] == {"auto_rejected": "0", "refund_tx_ref": "refund-tx"}

    def test_bad_refund_proof_keeps_campaign_open(self, world: PayoutWorld) -> None:
        campaign = world.campaign()
        submission = world.approved(campaign.campaign_id, 1_000)
        world.payments.confirmed["refund-tx"] = TransferCheck(
            tx_ref="refund-tx", error=ErrorCode.TX_NOT_FOUND, message="not found"
        )

        with pytest.raises(PayoutError) as exc_info:
            _finish(world, campaign.campaign_id, TransferProof(tx_ref="refund-tx"))

        assert exc_info.value.code == ErrorCode.TX_NOT_FOUND
        assert world.store.require_campaign(campaign.campaign_id).status == CampaignStatus.OPEN
        assert (
            world.store.get_submission(submission.submission_id).status
            == SubmissionStatus.APPROVED
        )

    def test_finish_paused_campaign(self, world: PayoutWorld) -> None:
        campaign = world.campaign()
        world.service.pause_campaign(campaign.campaign_id, CREATOR)
        assert _finish(world, campaign.campaign_id).status == CampaignStatus.COMPLETED

    def test_finish_twice(self, world: PayoutWorld) -> None:
        campaign = world.campaign()
        _finish(world, campaign.campaign_id)
        with pytest.raises(PayoutError) as exc_info:
            _finish(world, campaign.campaign_id)
        assert exc_info.value.code == ErrorCode.INVALID_STATUS

    def test_finished_campaign_refuses_submissions(self, world: PayoutWorld) -> None:
        campaign = world.campaign()
        _finish(world, campaign.campaign_id)
        with pytest.raises(PayoutError) as exc_info:
            world.approved(campaign.campaign_id, 1_000)
        assert exc_info.value.code == ErrorCode.CLOSED

    def test_only_creator(self, world: PayoutWorld) -> None:
        campaign = world.campaign()
        with pytest.raises(PayoutError) as exc_info:
            _finish(world, campaign.campaign_id, actor=ALICE)
        assert exc_info.value.code == ErrorCode.FORBIDDEN


class TestStats:
    def test_aggregates(self, world: PayoutWorld) -> None:
        campaign = world.campaign()
        world.approved(campaign.campaign_id, 4_000)
        world.approved(campaign.campaign_id, 2_000, submitter=BOB)
        bundle = asyncio.run(world.service.request_payment(campaign.campaign_id, BOB))
        asyncio.run(
            world.service.reconcile_payment(
                campaign.campaign_id, bundle.bundle_id, CREATOR, TransferProof(tx_ref="tx-1")
            )
        )
        world.content.verdict = ContentVerdict(passed=False, explanation="Off-topic")
        with pytest.raises(PayoutError):
            world.approved(campaign.campaign_id, 1_000)

        stats = world.service.get_campaign_stats(campaign.campaign_id, ALICE)

        assert stats.total_budget == 1_000_000
        assert stats.budget_remaining == 940_000
        assert stats.budget_allocated == 60_000
        assert stats.budget_spent == 20_000
        assert stats.total_submissions == 3
        assert (stats.approved, stats.payment_requested, stats.paid) == (1, 0, 1)
        assert stats.rejected == 1
        assert stats.pending == 0
        assert stats.total_engagement == 7_000
        assert stats.caller_allocated == 40_000
        assert stats.caller_paid == 0

    def test_unknown_campaign(self, world: PayoutWorld) -> None:
        with pytest.raises(PayoutError) as exc_info:
            world.service.get_campaign_stats("missing", ALICE)
        assert exc_info.value.code == ErrorCode.NOT_FOUND
