"""SQLite-backed ledger of campaigns, submissions, and payment bundles.

Mirrors the audit store pattern: accepts a sqlite3.Connection and uses
parameterized queries exclusively.  Mutations are grouped with
:meth:`LedgerStore.transaction`, which takes SQLite's write lock up front
(``BEGIN IMMEDIATE``) so concurrent service instances sharing the database
file are serialized by the store itself.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any

from payouts.domain.errors import ErrorCode, PayoutError
from payouts.domain.models import (
    Campaign,
    ContentGuidelines,
    PaymentBundle,
    PaymentToken,
    Submission,
)
from payouts.domain.types import (
    PROCESSING_STATES,
    BundleStatus,
    CampaignStatus,
    SocialPlatform,
    SubmissionStatus,
    TaskType,
)
from payouts.ledger.schema import from_db_time, to_db_time
from payouts.state_machine.machine import SubmissionStateMachine

# Columns a status transition may update alongside ``status``.
_SUBMISSION_FIELDS = frozenset(
    {
        "engagement_count",
        "payout_amount",
        "rejection_reason",
        "content_check_passed",
        "content_check_explanation",
        "bundle_id",
        "payment_tx_ref",
        "payment_sequence_index",
    }
)


def _placeholders(values: Iterable[Any]) -> str:
    return ", ".join("?" for _ in values)


def _submission_filter(
    campaign_id: str,
    submitter_id: str | None,
    statuses: Iterable[SubmissionStatus] | None,
    bundle_id: str | None,
) -> tuple[str, list[Any]]:
    conditions = ["campaign_id = ?"]
    params: list[Any] = [campaign_id]

    if submitter_id is not None:
        conditions.append("submitter_id = ?")
        params.append(submitter_id)

    if statuses is not None:
        values = [s.value for s in statuses]
        conditions.append(f"status IN ({_placeholders(values)})")
        params.extend(values)

    if bundle_id is not None:
        conditions.append("bundle_id = ?")
        params.append(bundle_id)

    return " AND ".join(conditions), params


def _decimal_or_none(value: str | None) -> Decimal | None:
    return Decimal(value) if value is not None else None


def _row_to_campaign(row: sqlite3.Row) -> Campaign:
    return Campaign(
        campaign_id=row["campaign_id"],
        creator_id=row["creator_id"],
        task_type=TaskType(row["task_type"]),
        status=CampaignStatus(row["status"]),
        total_budget=row["total_budget"],
        budget_remaining=row["budget_remaining"],
        cpm_rate=row["cpm_rate"],
        min_views=row["min_views"],
        min_payout_threshold=row["min_payout_threshold"],
        max_budget_per_user_percent=_decimal_or_none(row["max_budget_per_user_percent"]),
        max_budget_per_post_percent=_decimal_or_none(row["max_budget_per_post_percent"]),
        guidelines=ContentGuidelines.model_validate_json(row["guidelines_json"]),
        deadline_at=from_db_time(row["deadline_at"]),
        payment_token=PaymentToken.model_validate_json(row["payment_token_json"]),
        refund_tx_ref=row["refund_tx_ref"],
        refund_amount=row["refund_amount"],
        created_at=from_db_time(row["created_at"]),
    )


def _row_to_submission(row: sqlite3.Row) -> Submission:
    passed = row["content_check_passed"]
    return Submission(
        submission_id=row["submission_id"],
        campaign_id=row["campaign_id"],
        submitter_id=row["submitter_id"],
        platform=SocialPlatform(row["platform"]),
        post_id=row["post_id"],
        post_url=row["post_url"],
        fee_tx_ref=row["fee_tx_ref"],
        status=SubmissionStatus(row["status"]),
        engagement_count=row["engagement_count"],
        payout_amount=row["payout_amount"],
        rejection_reason=row["rejection_reason"],
        content_check_passed=None if passed is None else bool(passed),
        content_check_explanation=row["content_check_explanation"],
        bundle_id=row["bundle_id"],
        payment_tx_ref=row["payment_tx_ref"],
        payment_sequence_index=row["payment_sequence_index"],
        created_at=from_db_time(row["created_at"]),
        updated_at=from_db_time(row["updated_at"]),
    )


class LedgerStore:
    """Persist and query campaigns, submissions, bundles, and creator bans."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialize with an open ledger connection.

        Args:
            conn: A connection from :func:`open_ledger` whose schema has been
                  created with :func:`init_ledger_schema`.
        """
        self._conn = conn
        self._conn.row_factory = sqlite3.Row

    @property
    def conn(self) -> sqlite3.Connection:
        """The underlying connection, shared with the audit logger."""
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed block as one serializable, all-or-nothing unit.

        Nested use joins the outer transaction.  Never ``await`` inside the
        block: the write lock is held until it exits.
        """
        if self._conn.in_transaction:
            yield self._conn
            return

        self._conn.execute("BEGIN IMMEDIATE")
        try:
            yield self._conn
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        self._conn.execute("COMMIT")

    # ------------------------------------------------------------------
    # Campaigns
    # ------------------------------------------------------------------

    def insert_campaign(self, campaign: Campaign) -> None:
        """Insert a new campaign row."""
        created = to_db_time(campaign.created_at)
        self._conn.execute(
            """
            INSERT INTO campaigns (
                campaign_id, creator_id, task_type, status, total_budget,
                budget_remaining, cpm_rate, min_views, min_payout_threshold,
                max_budget_per_user_percent, max_budget_per_post_percent,
                guidelines_json, deadline_at, payment_token_json,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                campaign.campaign_id,
                campaign.creator_id,
                campaign.task_type.value,
                campaign.status.value,
                campaign.total_budget,
                campaign.budget_remaining,
                campaign.cpm_rate,
                campaign.min_views,
                campaign.min_payout_threshold,
                _str_or_none(campaign.max_budget_per_user_percent),
                _str_or_none(campaign.max_budget_per_post_percent),
                campaign.guidelines.model_dump_json(),
                to_db_time(campaign.deadline_at) if campaign.deadline_at else None,
                campaign.payment_token.model_dump_json(),
                created,
                created,
            ),
        )

    def get_campaign(self, campaign_id: str) -> Campaign | None:
        """Load a campaign by ID, or ``None`` if it does not exist."""
        row = self._conn.execute(
            "SELECT * FROM campaigns WHERE campaign_id = ?", (campaign_id,)
        ).fetchone()
        return _row_to_campaign(row) if row is not None else None

    def require_campaign(self, campaign_id: str) -> Campaign:
        """Load a campaign or raise ``NOT_FOUND``."""
        campaign = self.get_campaign(campaign_id)
        if campaign is None:
            raise PayoutError(ErrorCode.NOT_FOUND, "Campaign not found")
        return campaign

    def set_campaign_status(
        self,
        campaign_id: str,
        status: CampaignStatus,
        *,
        expected: Iterable[CampaignStatus],
        now: datetime,
    ) -> bool:
        """Move a campaign to *status* only if it is currently in *expected*.

        Returns:
            ``True`` if the row was updated.
        """
        allowed = [s.value for s in expected]
        cursor = self._conn.execute(
            f"""
            UPDATE campaigns SET status = ?, updated_at = ?
            WHERE campaign_id = ? AND status IN ({_placeholders(allowed)})
            """,
            (status.value, to_db_time(now), campaign_id, *allowed),
        )
        return cursor.rowcount == 1

    def record_refund(
        self, campaign_id: str, *, tx_ref: str | None, amount: int, now: datetime
    ) -> None:
        """Store the refund amount and optional proof for audit."""
        self._conn.execute(
            """
            UPDATE campaigns SET refund_tx_ref = ?, refund_amount = ?, updated_at = ?
            WHERE campaign_id = ?
            """,
            (tx_ref, amount, to_db_time(now), campaign_id),
        )

    # ------------------------------------------------------------------
    # Creator bans
    # ------------------------------------------------------------------

    def add_ban(self, creator_id: str, submitter_id: str, reason: str, now: datetime) -> None:
        """Ban *submitter_id* from all of *creator_id*'s campaigns."""
        self._conn.execute(
            """
            INSERT OR IGNORE INTO creator_bans (creator_id, submitter_id, reason, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (creator_id, submitter_id, reason, to_db_time(now)),
        )

    def is_banned(self, creator_id: str, submitter_id: str) -> bool:
        """Return True if the creator has banned the submitter."""
        row = self._conn.execute(
            "SELECT 1 FROM creator_bans WHERE creator_id = ? AND submitter_id = ?",
            (creator_id, submitter_id),
        ).fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------

    def get_submission(self, submission_id: str) -> Submission | None:
        """Load a submission by ID."""
        row = self._conn.execute(
            "SELECT * FROM submissions WHERE submission_id = ?", (submission_id,)
        ).fetchone()
        return _row_to_submission(row) if row is not None else None

    def require_submission(self, submission_id: str) -> Submission:
        """Load a submission or raise ``NOT_FOUND``."""
        submission = self.get_submission(submission_id)
        if submission is None:
            raise PayoutError(ErrorCode.NOT_FOUND, "Submission not found")
        return submission

    def find_submission_by_post(self, campaign_id: str, post_id: str) -> Submission | None:
        """Load the submission for a (campaign, post) pair, if any."""
        row = self._conn.execute(
            "SELECT * FROM submissions WHERE campaign_id = ? AND post_id = ?",
            (campaign_id, post_id),
        ).fetchone()
        return _row_to_submission(row) if row is not None else None

    def reclaim_stuck_submission(
        self, campaign_id: str, post_id: str, *, stale_before: datetime
    ) -> bool:
        """Delete an abandoned pipeline row for (campaign, post).

        Only rows still in an intermediate state whose last update is at or
        before *stale_before* are removed, as one conditional DELETE.

        Returns:
            ``True`` if a stuck row was deleted.
        """
        processing = [s.value for s in PROCESSING_STATES]
        cursor = self._conn.execute(
            f"""
            DELETE FROM submissions
            WHERE campaign_id = ? AND post_id = ?
              AND status IN ({_placeholders(processing)})
              AND updated_at <= ?
            """,
            (campaign_id, post_id, *processing, to_db_time(stale_before)),
        )
        return cursor.rowcount == 1

    def fee_proof_in_use(self, fee_tx_ref: str) -> bool:
        """Return True if an anti-spam fee proof already backs a submission."""
        row = self._conn.execute(
            "SELECT 1 FROM submissions WHERE fee_tx_ref = ?", (fee_tx_ref,)
        ).fetchone()
        return row is not None

    def insert_submission(self, submission: Submission) -> None:
        """Insert a new submission row.

        Raises:
            PayoutError: ``DUPLICATE`` when the (campaign, post) pair already
                has a row, ``INVALID_PAYMENT`` when the fee proof was already
                used.  Both are detected by unique constraints.
        """
        try:
            self._conn.execute(
                """
                INSERT INTO submissions (
                    submission_id, campaign_id, submitter_id, platform, post_id,
                    post_url, fee_tx_ref, status, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    submission.submission_id,
                    submission.campaign_id,
                    submission.submitter_id,
                    submission.platform.value,
                    submission.post_id,
                    submission.post_url,
                    submission.fee_tx_ref,
                    submission.status.value,
                    to_db_time(submission.created_at),
                    to_db_time(submission.updated_at),
                ),
            )
        except sqlite3.IntegrityError as exc:
            if "fee_tx_ref" in str(exc):
                raise PayoutError(
                    ErrorCode.INVALID_PAYMENT,
                    "This fee payment has already been used for another submission",
                ) from exc
            raise PayoutError(
                ErrorCode.DUPLICATE,
                "This post has already been submitted to this campaign",
            ) from exc

    def transition_submission(
        self,
        submission_id: str,
        event: str,
        *,
        now: datetime,
        **fields: Any,
    ) -> Submission:
        """Apply *event* to a submission and persist its new status.

        The current status is re-read inside the caller's transaction and
        validated against the transition map before the write.

        Args:
            submission_id: The submission to transition.
            event: A :class:`SubmissionEvent` value.
            now: Timestamp for ``updated_at``.
            **fields: Extra columns to set together with the status.

        Returns:
            The updated submission.

        Raises:
            PayoutError: ``NOT_FOUND`` if the row vanished (e.g. reclaimed).
            InvalidTransitionError: If the event is not valid from the
                current status.
        """
        unknown = set(fields) - _SUBMISSION_FIELDS
        if unknown:
            raise ValueError(f"Unknown submission fields: {sorted(unknown)}")

        with self.transaction():
            current = self.get_submission(submission_id)
            if current is None:
                raise PayoutError(ErrorCode.NOT_FOUND, "Submission not found")

            machine = SubmissionStateMachine(initial_state=current.status)
            new_status = machine.trigger(event)

            assignments = ["status = ?", "updated_at = ?"]
            params: list[Any] = [new_status.value, to_db_time(now)]
            for column, value in fields.items():
                assignments.append(f"{column} = ?")
                params.append(int(value) if isinstance(value, bool) else value)

            self._conn.execute(
                f"""
                UPDATE submissions SET {", ".join(assignments)}
                WHERE submission_id = ? AND status = ?
                """,
                (*params, submission_id, current.status.value),
            )
            return self.require_submission(submission_id)

    def list_submissions(
        self,
        campaign_id: str,
        *,
        submitter_id: str | None = None,
        statuses: Iterable[SubmissionStatus] | None = None,
        bundle_id: str | None = None,
        newest_first: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Submission]:
        """List a campaign's submissions with optional filters.

        Rows come oldest first unless *newest_first* is set; *limit* and
        *offset* select a window of the ordered result.
        """
        where, params = _submission_filter(campaign_id, submitter_id, statuses, bundle_id)
        direction = "DESC" if newest_first else "ASC"
        sql = (
            f"SELECT * FROM submissions WHERE {where} "
            f"ORDER BY created_at {direction}, submission_id {direction}"
        )
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])

        rows = self._conn.execute(sql, params).fetchall()
        return [_row_to_submission(row) for row in rows]

    def count_submissions(
        self,
        campaign_id: str,
        *,
        submitter_id: str | None = None,
        statuses: Iterable[SubmissionStatus] | None = None,
    ) -> int:
        """Count a campaign's submissions matching the same filters as listing."""
        where, params = _submission_filter(campaign_id, submitter_id, statuses, None)
        row = self._conn.execute(
            f"SELECT COUNT(*) FROM submissions WHERE {where}", params
        ).fetchone()
        return int(row[0])

    def sum_payouts(
        self,
        campaign_id: str,
        statuses: Iterable[SubmissionStatus],
        *,
        submitter_id: str | None = None,
    ) -> int:
        """Sum ``payout_amount`` over a campaign's submissions in *statuses*."""
        values = [s.value for s in statuses]
        sql = (
            "SELECT COALESCE(SUM(payout_amount), 0) FROM submissions "
            f"WHERE campaign_id = ? AND status IN ({_placeholders(values)})"
        )
        params: list[Any] = [campaign_id, *values]
        if submitter_id is not None:
            sql += " AND submitter_id = ?"
            params.append(submitter_id)
        return int(self._conn.execute(sql, params).fetchone()[0])

    # ------------------------------------------------------------------
    # Payment bundles
    # ------------------------------------------------------------------

    def insert_bundle(
        self,
        *,
        bundle_id: str,
        campaign_id: str,
        requester_id: str,
        total_amount: int,
        now: datetime,
    ) -> None:
        """Insert a PENDING bundle.

        Raises:
            PayoutError: ``BUNDLE_PENDING`` if the requester already has a
                pending bundle for the campaign.
        """
        try:
            self._conn.execute(
                """
                INSERT INTO payment_bundles (
                    bundle_id, campaign_id, requester_id, status, total_amount, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    bundle_id,
                    campaign_id,
                    requester_id,
                    BundleStatus.PENDING.value,
                    total_amount,
                    to_db_time(now),
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise PayoutError(
                ErrorCode.BUNDLE_PENDING,
                "You already have a pending payment request for this campaign",
            ) from exc

    def get_bundle(self, bundle_id: str) -> PaymentBundle | None:
        """Load a bundle with its current member submission IDs."""
        row = self._conn.execute(
            "SELECT * FROM payment_bundles WHERE bundle_id = ?", (bundle_id,)
        ).fetchone()
        return self._row_to_bundle(row) if row is not None else None

    def require_bundle(self, bundle_id: str) -> PaymentBundle:
        """Load a bundle or raise ``NOT_FOUND``."""
        bundle = self.get_bundle(bundle_id)
        if bundle is None:
            raise PayoutError(ErrorCode.NOT_FOUND, "Payment request not found")
        return bundle

    def list_bundles(
        self, campaign_id: str, *, requester_id: str | None = None
    ) -> list[PaymentBundle]:
        """List a campaign's bundles, newest first."""
        sql = "SELECT * FROM payment_bundles WHERE campaign_id = ?"
        params: list[Any] = [campaign_id]
        if requester_id is not None:
            sql += " AND requester_id = ?"
            params.append(requester_id)
        rows = self._conn.execute(sql + " ORDER BY created_at DESC", params).fetchall()
        return [self._row_to_bundle(row) for row in rows]

    def set_bundle_total(self, bundle_id: str, total_amount: int) -> None:
        """Overwrite a bundle's total with a recomputed member sum."""
        self._conn.execute(
            "UPDATE payment_bundles SET total_amount = ? WHERE bundle_id = ?",
            (total_amount, bundle_id),
        )

    def set_bundle_status(
        self,
        bundle_id: str,
        status: BundleStatus,
        *,
        expected: BundleStatus,
        payment_tx_ref: str | None = None,
        sequence_index: int | None = None,
        paid_at: datetime | None = None,
    ) -> bool:
        """Move a bundle to *status* only if it is currently *expected*.

        Returns:
            ``True`` if the row was updated.

        Raises:
            PayoutError: ``DUPLICATE`` if *payment_tx_ref* already settles
                another bundle.
        """
        try:
            cursor = self._conn.execute(
                """
                UPDATE payment_bundles
                SET status = ?,
                    payment_tx_ref = COALESCE(?, payment_tx_ref),
                    sequence_index = COALESCE(?, sequence_index),
                    paid_at = COALESCE(?, paid_at)
                WHERE bundle_id = ? AND status = ?
                """,
                (
                    status.value,
                    payment_tx_ref,
                    sequence_index,
                    to_db_time(paid_at) if paid_at else None,
                    bundle_id,
                    expected.value,
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise PayoutError(
                ErrorCode.DUPLICATE,
                "This transaction has already been used for another payment request",
            ) from exc
        return cursor.rowcount == 1

    def payment_proof_in_use(self, payment_tx_ref: str) -> bool:
        """Return True if a payout transaction already settles a bundle."""
        row = self._conn.execute(
            "SELECT 1 FROM payment_bundles WHERE payment_tx_ref = ?", (payment_tx_ref,)
        ).fetchone()
        return row is not None

    def _row_to_bundle(self, row: sqlite3.Row) -> PaymentBundle:
        member_rows = self._conn.execute(
            "SELECT submission_id FROM submissions WHERE bundle_id = ? "
            "ORDER BY created_at, submission_id",
            (row["bundle_id"],),
        ).fetchall()
        return PaymentBundle(
            bundle_id=row["bundle_id"],
            campaign_id=row["campaign_id"],
            requester_id=row["requester_id"],
            status=BundleStatus(row["status"]),
            total_amount=row["total_amount"],
            submission_ids=[r["submission_id"] for r in member_rows],
            payment_tx_ref=row["payment_tx_ref"],
            sequence_index=row["sequence_index"],
            created_at=from_db_time(row["created_at"]),
            paid_at=from_db_time(row["paid_at"]),
        )

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def status_counts(self, campaign_id: str) -> dict[SubmissionStatus, int]:
        """Count a campaign's submissions per status."""
        rows = self._conn.execute(
            "SELECT status, COUNT(*) AS n FROM submissions WHERE campaign_id = ? GROUP BY status",
            (campaign_id,),
        ).fetchall()
        return {SubmissionStatus(row["status"]): row["n"] for row in rows}

    def total_engagement(self, campaign_id: str) -> int:
        """Sum measured engagement over all of a campaign's submissions."""
        row = self._conn.execute(
            "SELECT COALESCE(SUM(engagement_count), 0) FROM submissions WHERE campaign_id = ?",
            (campaign_id,),
        ).fetchone()
        return int(row[0])


def _str_or_none(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None
