"""Shared pytest fixtures for the campaign payout test suite.

The verifier protocols are replaced by in-memory fakes so every pipeline
branch can be driven without network access.  ``PayoutWorld`` bundles a
service over a temporary SQLite ledger with its fakes and a settable clock.
"""

from __future__ import annotations

import asyncio
import itertools
import sqlite3
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from payouts.config import PayoutConfig, Settings
from payouts.domain.errors import IdentityExpiredError
from payouts.domain.models import Campaign, CampaignParams, ContentGuidelines, Submission
from payouts.ledger.schema import open_ledger
from payouts.notifications import Notification
from payouts.service import PayoutService, bootstrap_ledger
from payouts.verifiers.base import (
    ContentVerdict,
    LinkedIdentity,
    PostMedia,
    PostMetrics,
    TransferCheck,
)

SYSTEM_ADDRESS = "SysFeeWa11et1111111111111111111111111111111"
CREATOR = "creator-1"
ALICE = "alice"
BOB = "bob"
START = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def x_handle(user_id: str) -> str:
    """X handles allow only letters, digits and underscores."""
    return user_id.replace("-", "_")


class FakeClock:
    """A clock that only moves when told to."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeIdentity:
    def __init__(self) -> None:
        self.identities: dict[str, LinkedIdentity] = {}
        self.expired: set[str] = set()

    def link(self, user_id: str, platform_user_id: str | None = None) -> None:
        self.identities[user_id] = LinkedIdentity(
            user_id=user_id,
            platform_user_id=platform_user_id or f"x-{user_id}",
            platform_username=user_id,
            access_token=f"token-{user_id}",
        )

    async def get_identity(self, user_id: str) -> LinkedIdentity | None:
        if user_id in self.expired:
            raise IdentityExpiredError("X access token has expired, please re-link your account")
        return self.identities.get(user_id)


class FakeMetrics:
    def __init__(self) -> None:
        self.posts: dict[str, PostMetrics | Exception] = {}
        self.calls: list[tuple[str, str]] = []
        self.delay = 0.0

    async def fetch_post(self, post_id: str, credential: str) -> PostMetrics:
        self.calls.append((post_id, credential))
        if self.delay:
            await asyncio.sleep(self.delay)
        value = self.posts[post_id]
        if isinstance(value, Exception):
            raise value
        return value


class FakeContent:
    def __init__(self) -> None:
        self.verdict = ContentVerdict(passed=True, explanation="Follows every guideline")
        self.error: Exception | None = None
        self.calls: list[tuple[str, list[PostMedia], ContentGuidelines]] = []

    async def check(
        self, text: str, media: list[PostMedia], guidelines: ContentGuidelines
    ) -> ContentVerdict:
        self.calls.append((text, media, guidelines))
        if self.error is not None:
            raise self.error
        return self.verdict


class FakePayments:
    """Every transfer checks out unless a result is registered for its ref."""

    def __init__(self) -> None:
        self.transfers: dict[str, TransferCheck] = {}
        self.confirmed: dict[str, TransferCheck] = {}
        self.transfer_calls: list[tuple[str, str, int]] = []

    async def verify_transfer(self, tx_ref: str, recipient: str, amount: int) -> TransferCheck:
        self.transfer_calls.append((tx_ref, recipient, amount))
        return self.transfers.get(
            tx_ref, TransferCheck(tx_ref=tx_ref, destination=recipient, amount=amount)
        )

    async def verify_confirmed(self, tx_ref: str) -> TransferCheck:
        return self.confirmed.get(tx_ref, TransferCheck(tx_ref=tx_ref))


class RecordingSink:
    def __init__(self) -> None:
        self.notifications: list[Notification] = []
        self.fail = False

    def notify(self, notification: Notification) -> None:
        if self.fail:
            raise RuntimeError("notification backend down")
        self.notifications.append(notification)

    def for_user(self, user_id: str) -> list[Notification]:
        return [n for n in self.notifications if n.user_id == user_id]


class PayoutWorld:
    """A payout service over a real ledger with fake collaborators."""

    def __init__(self, conn: sqlite3.Connection, config: PayoutConfig) -> None:
        self.conn = conn
        self.config = config
        self.clock = FakeClock()
        self.identity = FakeIdentity()
        self.metrics = FakeMetrics()
        self.content = FakeContent()
        self.payments = FakePayments()
        self.sink = RecordingSink()
        self._fees = itertools.count(1)
        self._posts = itertools.count(1_000_000_001)
        self.service = self.build_service(conn)
        for user in (ALICE, BOB):
            self.identity.link(user)

    def build_service(self, conn: sqlite3.Connection) -> PayoutService:
        return PayoutService(
            conn,
            self.config,
            identity=self.identity,
            metrics=self.metrics,
            content=self.content,
            payments=self.payments,
            sink=self.sink,
            clock=self.clock,
        )

    @property
    def store(self) -> Any:
        return self.service.store

    def campaign(self, creator_id: str = CREATOR, **overrides: Any) -> Campaign:
        params = {"total_budget": 1_000_000, "cpm_rate": 10_000, **overrides}
        return self.service.create_campaign(creator_id, CampaignParams(**params))

    def post(
        self,
        engagement: int,
        author: str = ALICE,
        *,
        text: str = "Loving this product #ad",
        post_id: str | None = None,
    ) -> str:
        """Register a post with the fake metrics source and return its id."""
        post_id = post_id or str(next(self._posts))
        self.metrics.posts[post_id] = PostMetrics(
            post_id=post_id,
            engagement_count=engagement,
            author_id=f"x-{author}",
            text=text,
        )
        return post_id

    def fee(self) -> str:
        return f"fee-tx-{next(self._fees)}"

    def submit(
        self,
        campaign_id: str,
        post_id: str,
        submitter: str = ALICE,
        *,
        fee_tx_ref: str | None = None,
    ) -> Submission:
        url = f"https://x.com/{x_handle(submitter)}/status/{post_id}"
        return asyncio.run(
            self.service.submit_engagement(
                campaign_id, submitter, url, fee_tx_ref or self.fee()
            )
        )

    def approved(self, campaign_id: str, engagement: int, submitter: str = ALICE) -> Submission:
        return self.submit(campaign_id, self.post(engagement, submitter), submitter)


@pytest.fixture(autouse=True)
def _isolate_settings_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host variables such as ANTHROPIC_API_KEY out of Settings."""
    for field in Settings.model_fields:
        monkeypatch.delenv(field.upper(), raising=False)


@pytest.fixture
def ledger_path(tmp_path: Path) -> Path:
    return tmp_path / "ledger.db"


@pytest.fixture
def ledger_conn(ledger_path: Path) -> Iterator[sqlite3.Connection]:
    conn = open_ledger(ledger_path)
    bootstrap_ledger(conn)
    yield conn
    conn.close()


@pytest.fixture
def payout_config() -> PayoutConfig:
    return PayoutConfig(system_address=SYSTEM_ADDRESS, verifier_timeout_seconds=2.0)


@pytest.fixture
def world(ledger_conn: sqlite3.Connection, payout_config: PayoutConfig) -> PayoutWorld:
    return PayoutWorld(ledger_conn, payout_config)
