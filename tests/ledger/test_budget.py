"""Tests for atomic budget allocation, release and payout caps."""

from __future__ import annotations

import sqlite3
import threading
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path

import pytest

from payouts.domain.errors import ErrorCode, PayoutError
from payouts.domain.models import Campaign, Submission
from payouts.domain.types import SubmissionStatus
from payouts.ledger.budget import BudgetLedger, capped_request, raw_payout
from payouts.ledger.schema import open_ledger
from payouts.ledger.store import LedgerStore
from payouts.state_machine.transitions import SubmissionEvent

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _campaign(**overrides: object) -> Campaign:
    fields: dict[str, object] = {
        "campaign_id": "camp-1",
        "creator_id": "creator",
        "total_budget": 1_000_000,
        "budget_remaining": 1_000_000,
        "cpm_rate": 10_000,
        "created_at": NOW,
    }
    fields.update(overrides)
    return Campaign(**fields)  # type: ignore[arg-type]


@pytest.fixture
def store(ledger_conn: sqlite3.Connection) -> LedgerStore:
    store = LedgerStore(ledger_conn)
    store.insert_campaign(_campaign())
    return store


@pytest.fixture
def budget(store: LedgerStore) -> BudgetLedger:
    return BudgetLedger(store)


class TestRawPayout:
    def test_scenario_amount(self) -> None:
        assert raw_payout(250_000, 10_000) == 2_500_000

    def test_floors(self) -> None:
        assert raw_payout(999, 7) == 6

    def test_zero_engagement(self) -> None:
        assert raw_payout(0, 10_000) == 0


class TestTryAllocate:
    def test_grants_full_request(self, budget: BudgetLedger) -> None:
        assert budget.try_allocate("camp-1", 600_000, now=NOW) == 600_000
        assert budget.remaining("camp-1") == 400_000

    def test_clamps_to_remaining(self, budget: BudgetLedger) -> None:
        budget.try_allocate("camp-1", 600_000, now=NOW)
        assert budget.try_allocate("camp-1", 600_000, now=NOW) == 400_000
        assert budget.remaining("camp-1") == 0

    def test_exhausted_returns_zero(self, budget: BudgetLedger) -> None:
        budget.try_allocate("camp-1", 1_000_000, now=NOW)
        assert budget.try_allocate("camp-1", 1, now=NOW) == 0
        assert budget.remaining("camp-1") == 0

    def test_missing_campaign(self, budget: BudgetLedger) -> None:
        with pytest.raises(PayoutError) as exc_info:
            budget.try_allocate("nope", 10, now=NOW)
        assert exc_info.value.code == ErrorCode.NOT_FOUND

    def test_negative_request(self, budget: BudgetLedger) -> None:
        with pytest.raises(ValueError):
            budget.try_allocate("camp-1", -1, now=NOW)


class TestRelease:
    def test_round_trip(self, budget: BudgetLedger) -> None:
        granted = budget.try_allocate("camp-1", 250_000, now=NOW)
        assert budget.release("camp-1", granted, now=NOW) == 1_000_000
        assert budget.try_allocate("camp-1", 250_000, now=NOW) == granted

    def test_clamped_at_total(self, budget: BudgetLedger) -> None:
        budget.try_allocate("camp-1", 100, now=NOW)
        assert budget.release("camp-1", 500, now=NOW) == 1_000_000


class TestConcurrentAllocation:
    """Separate connections racing on one campaign never over-allocate."""

    def test_parallel_allocations_stay_within_budget(
        self, store: LedgerStore, ledger_path: Path
    ) -> None:
        grants: list[int] = []
        lock = threading.Lock()

        def worker() -> None:
            conn = open_ledger(ledger_path)
            try:
                granted = BudgetLedger(LedgerStore(conn)).try_allocate(
                    "camp-1", 150_000, now=NOW
                )
            finally:
                conn.close()
            with lock:
                grants.append(granted)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(grants) == 1_000_000
        assert sorted(grants) == [0, 0, 0, 100_000] + [150_000] * 6
        assert BudgetLedger(store).remaining("camp-1") == 0


class TestCappedRequest:
    def _held(self, store: LedgerStore, submission_id: str, post_id: str, payout: int) -> None:
        store.insert_submission(
            Submission(
                submission_id=submission_id,
                campaign_id="camp-1",
                submitter_id="alice",
                post_id=post_id,
                post_url=f"https://x.com/alice/status/{post_id}",
                fee_tx_ref=f"fee-{submission_id}",
                status=SubmissionStatus.READING_VIEWS,
                created_at=NOW,
                updated_at=NOW,
            )
        )
        store.transition_submission(submission_id, SubmissionEvent.METRICS_READ, now=NOW)
        store.transition_submission(
            submission_id, SubmissionEvent.APPROVE, now=NOW, payout_amount=payout
        )

    def test_no_caps(self, store: LedgerStore) -> None:
        assert capped_request(store, _campaign(), "alice", 2_500_000) == 2_500_000

    def test_post_cap(self, store: LedgerStore) -> None:
        campaign = _campaign(max_budget_per_post_percent=Decimal("10"))
        assert capped_request(store, campaign, "alice", 2_500_000) == 100_000

    def test_user_cap_counts_held_payouts(self, store: LedgerStore) -> None:
        self._held(store, "s1", "111", 150_000)
        campaign = _campaign(max_budget_per_user_percent=Decimal("20"))
        assert capped_request(store, campaign, "alice", 500_000) == 50_000
        assert capped_request(store, campaign, "bob", 500_000) == 200_000

    def test_user_cap_reached(self, store: LedgerStore) -> None:
        self._held(store, "s1", "111", 200_000)
        campaign = _campaign(max_budget_per_user_percent=Decimal("20"))
        with pytest.raises(PayoutError) as exc_info:
            capped_request(store, campaign, "alice", 10)
        assert exc_info.value.code == ErrorCode.USER_CAP_REACHED
        assert exc_info.value.details == {"user_cap": 200_000}

    def test_caps_ignore_remaining_budget(self, store: LedgerStore) -> None:
        campaign = _campaign(
            budget_remaining=1_000, max_budget_per_post_percent=Decimal("50")
        )
        assert capped_request(store, campaign, "alice", 800_000) == 500_000
