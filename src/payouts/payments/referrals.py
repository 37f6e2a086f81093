"""Referral links and the earnings recorded when a referred user is paid."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Protocol

from payouts.domain.models import ReferralLink
from payouts.ledger.schema import to_db_time
from payouts.payments.fees import FeeSplit


class ReferralDirectory(Protocol):
    """Read referral links and record referral earnings."""

    def get_active_link(self, user_id: str) -> ReferralLink | None: ...

    def record_earning(
        self,
        link: ReferralLink,
        *,
        campaign_id: str,
        bundle_id: str,
        total_amount: int,
        split: FeeSplit,
        tx_ref: str | None,
    ) -> None: ...


class LedgerReferralDirectory:
    """Referral tables in the ledger database."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._conn = conn
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    def add_link(self, link: ReferralLink) -> None:
        """Register *link* as the referred user's active referral."""
        self._conn.execute(
            """
            INSERT OR REPLACE INTO referral_links (
                referral_id, referrer_id, referred_user_id, referrer_fee_pct, active
            ) VALUES (?, ?, ?, ?, 1)
            """,
            (link.referral_id, link.referrer_id, link.referred_user_id, link.referrer_fee_pct),
        )

    def get_active_link(self, user_id: str) -> ReferralLink | None:
        """Return the active link for a referred user, if any."""
        row = self._conn.execute(
            """
            SELECT referral_id, referrer_id, referred_user_id, referrer_fee_pct
            FROM referral_links WHERE referred_user_id = ? AND active = 1
            """,
            (user_id,),
        ).fetchone()
        if row is None:
            return None
        return ReferralLink(
            referral_id=row["referral_id"],
            referrer_id=row["referrer_id"],
            referred_user_id=row["referred_user_id"],
            referrer_fee_pct=row["referrer_fee_pct"],
        )

    def record_earning(
        self,
        link: ReferralLink,
        *,
        campaign_id: str,
        bundle_id: str,
        total_amount: int,
        split: FeeSplit,
        tx_ref: str | None,
    ) -> None:
        """Record the referrer's share of one paid bundle.

        A bundle earns at most once; a repeat for the same bundle is ignored.
        """
        self._conn.execute(
            """
            INSERT OR IGNORE INTO referral_earnings (
                referral_id, referrer_id, referred_user_id, campaign_id, bundle_id,
                total_amount, referrer_amount, platform_amount, tx_ref, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                link.referral_id,
                link.referrer_id,
                link.referred_user_id,
                campaign_id,
                bundle_id,
                total_amount,
                split.referrer,
                split.platform,
                tx_ref,
                to_db_time(self._clock()),
            ),
        )

    def earnings_for(self, referrer_id: str) -> list[dict[str, object]]:
        """List a referrer's recorded earnings, oldest first."""
        rows = self._conn.execute(
            "SELECT * FROM referral_earnings WHERE referrer_id = ? ORDER BY id",
            (referrer_id,),
        ).fetchall()
        return [dict(row) for row in rows]
