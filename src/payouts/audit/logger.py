"""Convenience class for inserting audit trail entries.

Each method creates a properly structured :class:`AuditEntry` and inserts it
via :func:`insert_audit_entry`.  Callers invoke these inside the ledger
transaction whose mutation they record.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from datetime import UTC, datetime

from payouts.audit.models import AuditEntry, EventType
from payouts.audit.store import insert_audit_entry


class AuditLogger:
    """Typed convenience API for inserting audit entries.

    Args:
        conn: An open SQLite connection to the ledger database.
        clock: Source of timestamps, defaults to UTC now.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._conn = conn
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    def _insert(self, entry: AuditEntry) -> int:
        return insert_audit_entry(self._conn, entry, now=self._clock())

    def log_campaign_created(self, campaign_id: str, creator_id: str, total_budget: int) -> int:
        """Log the creation of a campaign with its funded budget."""
        return self._insert(
            AuditEntry(
                event_type=EventType.CAMPAIGN_CREATED,
                campaign_id=campaign_id,
                actor_id=creator_id,
                amount=total_budget,
            )
        )

    def log_campaign_status(
        self, campaign_id: str, actor_id: str, from_status: str, to_status: str
    ) -> int:
        """Log a campaign lifecycle change (pause, resume)."""
        return self._insert(
            AuditEntry(
                event_type=EventType.CAMPAIGN_STATUS,
                campaign_id=campaign_id,
                actor_id=actor_id,
                from_status=from_status,
                to_status=to_status,
            )
        )

    def log_campaign_finished(
        self,
        campaign_id: str,
        actor_id: str,
        refund_amount: int,
        auto_rejected: int,
        refund_tx_ref: str | None = None,
    ) -> int:
        """Log a campaign close and the refund amount computed for it.

        Args:
            campaign_id: Campaign identifier.
            actor_id: The creator closing the campaign.
            refund_amount: Unallocated budget at close, in base units.
            auto_rejected: Number of unbundled approvals rejected by the close.
            refund_tx_ref: Optional external refund transfer reference.

        Returns:
            The row ID of the inserted audit entry.
        """
        metadata = {"auto_rejected": str(auto_rejected)}
        if refund_tx_ref is not None:
            metadata["refund_tx_ref"] = refund_tx_ref
        return self._insert(
            AuditEntry(
                event_type=EventType.CAMPAIGN_FINISHED,
                campaign_id=campaign_id,
                actor_id=actor_id,
                amount=refund_amount,
                to_status="completed",
                metadata=metadata,
            )
        )

    def log_submission_transition(
        self,
        campaign_id: str,
        submission_id: str,
        from_status: str | None,
        to_status: str,
        actor_id: str | None = None,
        reason: str | None = None,
    ) -> int:
        """Log a submission status change.

        Args:
            campaign_id: Campaign identifier.
            submission_id: Submission identifier.
            from_status: Status before the change, ``None`` on creation.
            to_status: Status after the change.
            actor_id: Who caused the change (submitter, creator or system).
            reason: Rejection reason, when there is one.

        Returns:
            The row ID of the inserted audit entry.
        """
        return self._insert(
            AuditEntry(
                event_type=EventType.SUBMISSION_TRANSITION,
                campaign_id=campaign_id,
                submission_id=submission_id,
                actor_id=actor_id,
                from_status=from_status,
                to_status=to_status,
                metadata={"reason": reason} if reason else None,
            )
        )

    def log_allocation(
        self, campaign_id: str, submission_id: str, requested: int, granted: int
    ) -> int:
        """Log a budget allocation and how much of the request was granted."""
        return self._insert(
            AuditEntry(
                event_type=EventType.BUDGET_ALLOCATED,
                campaign_id=campaign_id,
                submission_id=submission_id,
                amount=granted,
                metadata={"requested": str(requested)},
            )
        )

    def log_release(self, campaign_id: str, submission_id: str | None, amount: int) -> int:
        """Log budget returned to a campaign."""
        return self._insert(
            AuditEntry(
                event_type=EventType.BUDGET_RELEASED,
                campaign_id=campaign_id,
                submission_id=submission_id,
                amount=amount,
            )
        )

    def log_bundle_created(
        self, campaign_id: str, bundle_id: str, requester_id: str, total_amount: int, size: int
    ) -> int:
        """Log a payment request bundling a requester's approvals."""
        return self._insert(
            AuditEntry(
                event_type=EventType.BUNDLE_CREATED,
                campaign_id=campaign_id,
                bundle_id=bundle_id,
                actor_id=requester_id,
                amount=total_amount,
                metadata={"submissions": str(size)},
            )
        )

    def log_bundle_reconciled(
        self,
        campaign_id: str,
        bundle_id: str,
        actor_id: str,
        total_amount: int,
        tx_ref: str,
        paid_submissions: int,
    ) -> int:
        """Log a bundle marked paid against an external transfer proof."""
        return self._insert(
            AuditEntry(
                event_type=EventType.BUNDLE_RECONCILED,
                campaign_id=campaign_id,
                bundle_id=bundle_id,
                actor_id=actor_id,
                amount=total_amount,
                to_status="paid",
                metadata={"tx_ref": tx_ref, "paid_submissions": str(paid_submissions)},
            )
        )

    def log_ban(self, creator_id: str, submitter_id: str, reason: str) -> int:
        """Log a creator banning a submitter from their campaigns."""
        return self._insert(
            AuditEntry(
                event_type=EventType.CREATOR_BAN,
                actor_id=creator_id,
                metadata={"submitter_id": submitter_id, "reason": reason},
            )
        )

    def log_error(
        self,
        campaign_id: str | None,
        error_message: str,
        context: str | None = None,
        submission_id: str | None = None,
    ) -> int:
        """Log an error encountered during processing.

        Args:
            campaign_id: Campaign identifier (if available).
            error_message: The error message.
            context: Additional context about where the error occurred.
            submission_id: Submission identifier (if available).

        Returns:
            The row ID of the inserted audit entry.
        """
        meta: dict[str, str] = {"error_message": error_message}
        if context is not None:
            meta["context"] = context

        return self._insert(
            AuditEntry(
                event_type=EventType.ERROR,
                campaign_id=campaign_id,
                submission_id=submission_id,
                metadata=meta,
            )
        )
