"""Linked platform identities stored in the ledger database."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from datetime import UTC, datetime

from payouts.domain.errors import IdentityExpiredError
from payouts.domain.types import SocialPlatform
from payouts.ledger.schema import from_db_time, to_db_time
from payouts.verifiers.base import LinkedIdentity


class LedgerIdentityDirectory:
    """Read linked accounts from the ``linked_identities`` table.

    Rows are written by the account-linking flow, which lives outside this
    service; :meth:`link` exists for that flow and for fixtures.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._conn = conn
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    def link(self, identity: LinkedIdentity) -> None:
        """Insert or replace a user's linked identity."""
        self._conn.execute(
            """
            INSERT OR REPLACE INTO linked_identities (
                user_id, platform, platform_user_id, platform_username,
                access_token, expires_at
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                identity.user_id,
                identity.platform.value,
                identity.platform_user_id,
                identity.platform_username,
                identity.access_token,
                to_db_time(identity.expires_at) if identity.expires_at else None,
            ),
        )

    async def get_identity(self, user_id: str) -> LinkedIdentity | None:
        """Return the user's identity, or ``None`` when nothing usable is linked.

        Raises:
            IdentityExpiredError: If the access token has expired.
        """
        row = self._conn.execute(
            "SELECT * FROM linked_identities WHERE user_id = ?", (user_id,)
        ).fetchone()
        if row is None or not row["platform_user_id"] or not row["access_token"]:
            return None

        expires_at = from_db_time(row["expires_at"])
        if expires_at is not None and expires_at <= self._clock():
            raise IdentityExpiredError(
                "X access token expired or invalid. Please re-link your X account."
            )

        return LinkedIdentity(
            user_id=row["user_id"],
            platform=SocialPlatform(row["platform"]),
            platform_user_id=row["platform_user_id"],
            platform_username=row["platform_username"],
            access_token=row["access_token"],
            expires_at=expires_at,
        )
