"""Tests for domain enumerations and status groupings."""

import pytest

from payouts.domain.types import (
    ALLOCATED_STATES,
    PROCESSING_STATES,
    REJECTED_STATES,
    BundleStatus,
    CampaignStatus,
    RejectionPreset,
    SubmissionStatus,
)


class TestSubmissionStatus:
    def test_has_exactly_eight_members(self) -> None:
        assert len(SubmissionStatus) == 8

    def test_from_string(self) -> None:
        assert SubmissionStatus("payment_requested") == SubmissionStatus.PAYMENT_REQUESTED

    def test_invalid_value_raises(self) -> None:
        with pytest.raises(ValueError):
            SubmissionStatus("pending")


class TestStatusGroups:
    def test_groups_are_disjoint(self) -> None:
        assert not ALLOCATED_STATES & PROCESSING_STATES
        assert not ALLOCATED_STATES & REJECTED_STATES
        assert not PROCESSING_STATES & REJECTED_STATES

    def test_allocated_states(self) -> None:
        assert ALLOCATED_STATES == {
            SubmissionStatus.APPROVED,
            SubmissionStatus.PAYMENT_REQUESTED,
            SubmissionStatus.PAID,
        }

    def test_processing_states(self) -> None:
        assert PROCESSING_STATES == {
            SubmissionStatus.READING_VIEWS,
            SubmissionStatus.CHECKING_CONTENT,
        }


def test_campaign_and_bundle_values() -> None:
    assert [s.value for s in CampaignStatus] == ["open", "paused", "completed", "cancelled"]
    assert [s.value for s in BundleStatus] == ["pending", "paid", "cancelled"]


def test_rejection_presets() -> None:
    assert [p.value for p in RejectionPreset] == ["Botting", "Quality", "Relevancy", "Other"]
