"""Shared collaborators handed to each payout component."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TypeVar

from payouts.audit.logger import AuditLogger
from payouts.config import PayoutConfig
from payouts.domain.errors import ErrorCode, PayoutError
from payouts.domain.models import Campaign
from payouts.ledger.budget import BudgetLedger
from payouts.ledger.store import LedgerStore
from payouts.notifications import NotificationSink, Outbox

T = TypeVar("T")


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class EngineContext:
    """Ledger, audit, configuration, notification sink and clock."""

    store: LedgerStore
    config: PayoutConfig
    sink: NotificationSink
    audit: AuditLogger
    clock: Callable[[], datetime] = utc_now
    budget: BudgetLedger = field(init=False)

    def __post_init__(self) -> None:
        self.budget = BudgetLedger(self.store)

    def now(self) -> datetime:
        return self.clock()

    def outbox(self) -> Outbox:
        return Outbox(self.sink)

    async def bounded(self, call: Awaitable[T]) -> T:
        """Await a verifier call, raising ``TimeoutError`` past the configured limit."""
        return await asyncio.wait_for(call, timeout=self.config.verifier_timeout_seconds)

    def require_creator(self, campaign_id: str, actor_id: str, action: str) -> Campaign:
        """Load a campaign and check *actor_id* created it.

        Raises:
            PayoutError: ``NOT_FOUND`` or ``FORBIDDEN``.
        """
        campaign = self.store.require_campaign(campaign_id)
        if campaign.creator_id != actor_id:
            raise PayoutError(
                ErrorCode.FORBIDDEN, f"Only the campaign creator can {action}"
            )
        return campaign


def campaign_link(campaign_id: str) -> str:
    """Relative link used in notifications about a campaign."""
    return f"/tasks/{campaign_id}"
