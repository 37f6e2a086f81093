"""Tests for payment requests: bundling a requester's approved submissions."""

from __future__ import annotations

import asyncio

import pytest
from conftest import ALICE, BOB, CREATOR, PayoutWorld

from payouts.domain.errors import ErrorCode, PayoutError
from payouts.domain.types import BundleStatus, NotificationType, SubmissionStatus


def _request(world: PayoutWorld, campaign_id: str, requester: str = ALICE):
    return asyncio.run(world.service.request_payment(campaign_id, requester))


class TestRequestPayment:
    def test_bundles_all_approved(self, world: PayoutWorld) -> None:
        campaign = world.campaign()
        first = world.approved(campaign.campaign_id, 4_000)
        second = world.approved(campaign.campaign_id, 2_000)
        world.approved(campaign.campaign_id, 1_000, submitter=BOB)

        bundle = _request(world, campaign.campaign_id)

        assert bundle.status == BundleStatus.PENDING
        assert bundle.requester_id == ALICE
        assert bundle.total_amount == 60_000
        assert set(bundle.submission_ids) == {first.submission_id, second.submission_id}
        for submission_id in bundle.submission_ids:
            member = world.store.get_submission(submission_id)
            assert member.status == SubmissionStatus.PAYMENT_REQUESTED
            assert member.bundle_id == bundle.bundle_id

    def test_notifies_creator(self, world: PayoutWorld) -> None:
        campaign = world.campaign()
        world.approved(campaign.campaign_id, 4_000)
        world.sink.notifications.clear()

        _request(world, campaign.campaign_id)

        [note] = world.sink.for_user(CREATOR)
        assert note.type == NotificationType.PAYMENT_REQUEST
        assert "1 approved submission(s)" in note.body

    def test_below_threshold_changes_nothing(self, world: PayoutWorld) -> None:
        campaign = world.campaign(min_payout_threshold=100_000)
        submissions = [world.approved(campaign.campaign_id, e) for e in (2_000, 2_000, 1_000)]

        with pytest.raises(PayoutError) as exc_info:
            _request(world, campaign.campaign_id)

        assert exc_info.value.code == ErrorCode.BELOW_THRESHOLD
        assert exc_info.value.details == {"total": 50_000, "min_payout_threshold": 100_000}
        assert world.store.list_bundles(campaign.campaign_id) == []
        for s in submissions:
            assert world.store.get_submission(s.submission_id).status == SubmissionStatus.APPROVED

    def test_at_threshold_allowed(self, world: PayoutWorld) -> None:
        campaign = world.campaign(min_payout_threshold=50_000)
        world.approved(campaign.campaign_id, 5_000)
        assert _request(world, campaign.campaign_id).total_amount == 50_000

    def test_no_approved_submissions(self, world: PayoutWorld) -> None:
        campaign = world.campaign()
        with pytest.raises(PayoutError) as exc_info:
            _request(world, campaign.campaign_id)
        assert exc_info.value.code == ErrorCode.NO_SUBMISSIONS

    def test_second_request_while_pending(self, world: PayoutWorld) -> None:
        campaign = world.campaign()
        world.approved(campaign.campaign_id, 1_000)
        _request(world, campaign.campaign_id)
        world.approved(campaign.campaign_id, 1_000)

        with pytest.raises(PayoutError) as exc_info:
            _request(world, campaign.campaign_id)

        assert exc_info.value.code == ErrorCode.BUNDLE_PENDING
        approved = world.store.list_submissions(
            campaign.campaign_id, statuses=[SubmissionStatus.APPROVED]
        )
        assert len(approved) == 1
        assert approved[0].bundle_id is None

    def test_creator_cannot_request(self, world: PayoutWorld) -> None:
        campaign = world.campaign()
        with pytest.raises(PayoutError) as exc_info:
            _request(world, campaign.campaign_id, CREATOR)
        assert exc_info.value.code == ErrorCode.OWN_CAMPAIGN

    def test_unknown_campaign(self, world: PayoutWorld) -> None:
        with pytest.raises(PayoutError) as exc_info:
            _request(world, "missing")
        assert exc_info.value.code == ErrorCode.NOT_FOUND


class TestListRequests:
    def test_creator_sees_all_requester_sees_own(self, world: PayoutWorld) -> None:
        campaign = world.campaign()
        world.approved(campaign.campaign_id, 1_000)
        world.approved(campaign.campaign_id, 1_000, submitter=BOB)
        _request(world, campaign.campaign_id, ALICE)
        _request(world, campaign.campaign_id, BOB)

        everything = world.service.list_payment_requests(campaign.campaign_id, CREATOR)
        own = world.service.list_payment_requests(campaign.campaign_id, BOB)

        assert {b.requester_id for b in everything} == {ALICE, BOB}
        assert [b.requester_id for b in own] == [BOB]
        assert world.service.list_payment_requests(campaign.campaign_id, "carol") == []
