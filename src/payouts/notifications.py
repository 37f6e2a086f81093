"""Notification sink and the post-commit outbox.

Side effects collected during a ledger operation are held in an
:class:`Outbox` and run only after the transaction has committed.  A failing
side effect is logged and dropped; it never reaches the caller.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

import structlog

from payouts.domain.types import NotificationType
from payouts.ledger.schema import to_db_time

logger = structlog.get_logger()


@dataclass(frozen=True)
class Notification:
    """One message for a user's notification feed."""

    user_id: str
    type: NotificationType
    title: str
    body: str
    link: str


class NotificationSink(Protocol):
    """Fire-and-forget delivery of notifications."""

    def notify(self, notification: Notification) -> None: ...


class LedgerNotificationSink:
    """Store notifications in the ledger's ``notifications`` table."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._conn = conn
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    def notify(self, notification: Notification) -> None:
        """Insert the notification; failures are logged, never raised."""
        try:
            self._conn.execute(
                """
                INSERT INTO notifications (user_id, type, title, body, link, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    notification.user_id,
                    notification.type.value,
                    notification.title,
                    notification.body,
                    notification.link,
                    to_db_time(self._clock()),
                ),
            )
        except sqlite3.Error:
            logger.exception(
                "Failed to create notification",
                user_id=notification.user_id,
                type=notification.type.value,
            )


class Outbox:
    """Queue of best-effort effects flushed after the core transaction commits.

    Usage::

        outbox = Outbox(sink)
        with store.transaction():
            ...
            outbox.notify(Notification(...))
        await outbox.flush()
    """

    def __init__(self, sink: NotificationSink) -> None:
        self._sink = sink
        self._notifications: list[Notification] = []
        self._tasks: list[tuple[str, Callable[[], Awaitable[None] | None]]] = []

    def notify(self, notification: Notification) -> None:
        self._notifications.append(notification)

    def defer(self, name: str, effect: Callable[[], Awaitable[None] | None]) -> None:
        """Queue an arbitrary effect (e.g. referral bookkeeping) under *name*."""
        self._tasks.append((name, effect))

    def __len__(self) -> int:
        return len(self._notifications) + len(self._tasks)

    async def flush(self) -> None:
        """Run every queued effect in order, logging and discarding failures."""
        tasks, self._tasks = self._tasks, []
        for name, effect in tasks:
            try:
                result = effect()
                if result is not None:
                    await result
            except Exception:
                logger.exception("Deferred effect failed", effect=name)

        notifications, self._notifications = self._notifications, []
        for notification in notifications:
            try:
                self._sink.notify(notification)
            except Exception:
                logger.exception(
                    "Notification delivery failed",
                    user_id=notification.user_id,
                    type=notification.type.value,
                )
