"""Atomic budget allocation against a campaign's remaining budget."""

from __future__ import annotations

from datetime import datetime

import structlog

from payouts.domain.errors import ErrorCode, PayoutError
from payouts.domain.models import Campaign
from payouts.domain.types import ALLOCATED_STATES
from payouts.ledger.schema import to_db_time
from payouts.ledger.store import LedgerStore

logger = structlog.get_logger()


class BudgetLedger:
    """Grant and return slices of a campaign's budget.

    Each operation is a single conditional UPDATE, so two concurrent
    allocations can never drive ``budget_remaining`` below zero and a
    release can never push it above ``total_budget``.
    """

    def __init__(self, store: LedgerStore) -> None:
        self._store = store

    def try_allocate(self, campaign_id: str, requested: int, *, now: datetime) -> int:
        """Allocate up to *requested* base units from the campaign.

        The granted amount is ``min(requested, budget_remaining)`` evaluated
        at the moment of the write.  A result of 0 means the budget is
        exhausted; the caller decides how to report that.

        Args:
            campaign_id: The campaign to draw from.
            requested: The desired amount, already capped by per-post and
                per-user limits.
            now: Timestamp for ``updated_at``.

        Returns:
            The amount actually allocated.

        Raises:
            PayoutError: ``NOT_FOUND`` if the campaign does not exist.
        """
        if requested < 0:
            raise ValueError("requested allocation must not be negative")

        with self._store.transaction() as conn:
            rows = conn.execute(
                """
                UPDATE campaigns
                SET budget_remaining = budget_remaining - MIN(?, budget_remaining),
                    last_allocation = MIN(?, budget_remaining),
                    updated_at = ?
                WHERE campaign_id = ?
                RETURNING last_allocation, budget_remaining
                """,
                (requested, requested, to_db_time(now), campaign_id),
            ).fetchall()
        row = rows[0] if rows else None

        if row is None:
            raise PayoutError(ErrorCode.NOT_FOUND, "Campaign not found")

        granted = int(row["last_allocation"])
        logger.debug(
            "Budget allocated",
            campaign_id=campaign_id,
            requested=requested,
            granted=granted,
            budget_remaining=row["budget_remaining"],
        )
        return granted

    def release(self, campaign_id: str, amount: int, *, now: datetime) -> int:
        """Return *amount* base units to the campaign's remaining budget.

        The result is clamped at ``total_budget``.

        Returns:
            The new ``budget_remaining``.
        """
        if amount < 0:
            raise ValueError("released amount must not be negative")

        with self._store.transaction() as conn:
            rows = conn.execute(
                """
                UPDATE campaigns
                SET budget_remaining = MIN(budget_remaining + ?, total_budget),
                    updated_at = ?
                WHERE campaign_id = ?
                RETURNING budget_remaining
                """,
                (amount, to_db_time(now), campaign_id),
            ).fetchall()
        row = rows[0] if rows else None

        if row is None:
            raise PayoutError(ErrorCode.NOT_FOUND, "Campaign not found")

        logger.debug(
            "Budget released",
            campaign_id=campaign_id,
            amount=amount,
            budget_remaining=row["budget_remaining"],
        )
        return int(row["budget_remaining"])

    def remaining(self, campaign_id: str) -> int:
        """Read the campaign's current remaining budget."""
        return self._store.require_campaign(campaign_id).budget_remaining


def capped_request(
    store: LedgerStore, campaign: Campaign, submitter_id: str, raw_amount: int
) -> int:
    """Apply the per-post and per-user caps to a raw payout.

    Both caps are shares of the campaign's *total* budget.  The per-user cap
    counts everything the submitter already holds in approved, requested or
    paid submissions.  Call this inside the transaction that allocates.

    Returns:
        The amount to request from :meth:`BudgetLedger.try_allocate`.

    Raises:
        PayoutError: ``USER_CAP_REACHED`` if the submitter has no room left.
    """
    requested = raw_amount

    post_cap = campaign.per_post_cap()
    if post_cap is not None:
        requested = min(requested, post_cap)

    user_cap = campaign.per_user_cap()
    if user_cap is not None:
        held = store.sum_payouts(
            campaign.campaign_id, ALLOCATED_STATES, submitter_id=submitter_id
        )
        room = user_cap - held
        if room <= 0:
            raise PayoutError(
                ErrorCode.USER_CAP_REACHED,
                "You have reached the maximum payout allowed per user for this campaign",
                {"user_cap": user_cap},
            )
        requested = min(requested, room)

    return requested


def raw_payout(engagement: int, cpm_rate: int) -> int:
    """``floor(engagement / 1000 * cpm)`` in exact integer arithmetic."""
    return engagement * cpm_rate // 1000
