"""Tests for the audit_log table: init, insert, query, and SQL injection prevention."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime, timedelta
from pathlib import Path

from payouts.audit.models import AuditEntry, EventType
from payouts.audit.store import (
    init_audit_schema,
    insert_audit_entry,
    open_audit_db,
    query_audit_trail,
)

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class TestInitAuditSchema:
    """Tests for table and index creation."""

    def test_creates_database_file(self, tmp_path: Path) -> None:
        db_path = tmp_path / "ledger.db"
        conn = open_audit_db(db_path)
        assert db_path.exists()
        conn.close()

    def test_indexes_created(self, ledger_conn: sqlite3.Connection) -> None:
        rows = ledger_conn.execute(
            "SELECT name FROM sqlite_master WHERE type='index' AND name LIKE 'idx_audit_%'"
        ).fetchall()
        assert {row[0] for row in rows} == {
            "idx_audit_campaign",
            "idx_audit_submission",
            "idx_audit_timestamp",
        }

    def test_idempotent(self, ledger_conn: sqlite3.Connection) -> None:
        init_audit_schema(ledger_conn)
        init_audit_schema(ledger_conn)


class TestInsertAuditEntry:
    def test_insert_returns_row_id(self, ledger_conn: sqlite3.Connection) -> None:
        entry = AuditEntry(event_type=EventType.CAMPAIGN_CREATED, campaign_id="camp-1")
        first = insert_audit_entry(ledger_conn, entry, now=T0)
        second = insert_audit_entry(ledger_conn, entry, now=T0)
        assert first >= 1
        assert second == first + 1

    def test_round_trips_all_fields(self, ledger_conn: sqlite3.Connection) -> None:
        insert_audit_entry(
            ledger_conn,
            AuditEntry(
                event_type=EventType.SUBMISSION_TRANSITION,
                campaign_id="camp-1",
                submission_id="sub-1",
                bundle_id="b-1",
                actor_id="creator-1",
                amount=2_500,
                from_status="approved",
                to_status="creator_rejected",
                metadata={"reason": "Off-brand"},
            ),
            now=T0,
        )

        [row] = query_audit_trail(ledger_conn)
        assert row["timestamp"] == "2026-03-01T12:00:00.000000Z"
        assert row["event_type"] == "submission_transition"
        assert row["submission_id"] == "sub-1"
        assert row["bundle_id"] == "b-1"
        assert row["amount"] == 2_500
        assert row["from_status"] == "approved"
        assert row["to_status"] == "creator_rejected"
        assert row["metadata"] == {"reason": "Off-brand"}

    def test_rolled_back_with_enclosing_transaction(
        self, ledger_conn: sqlite3.Connection
    ) -> None:
        ledger_conn.execute("BEGIN IMMEDIATE")
        insert_audit_entry(
            ledger_conn, AuditEntry(event_type=EventType.ERROR), now=T0
        )
        ledger_conn.execute("ROLLBACK")
        assert query_audit_trail(ledger_conn) == []


class TestQueryAuditTrail:
    def _seed(self, conn: sqlite3.Connection) -> None:
        entries = [
            (EventType.CAMPAIGN_CREATED, "camp-1", None, "creator-1"),
            (EventType.SUBMISSION_TRANSITION, "camp-1", "sub-1", "alice"),
            (EventType.BUDGET_ALLOCATED, "camp-1", "sub-1", None),
            (EventType.SUBMISSION_TRANSITION, "camp-2", "sub-2", "bob"),
        ]
        for hours, (event_type, campaign_id, submission_id, actor_id) in enumerate(entries):
            insert_audit_entry(
                conn,
                AuditEntry(
                    event_type=event_type,
                    campaign_id=campaign_id,
                    submission_id=submission_id,
                    actor_id=actor_id,
                ),
                now=T0 + timedelta(hours=hours),
            )

    def test_newest_first(self, ledger_conn: sqlite3.Connection) -> None:
        self._seed(ledger_conn)
        results = query_audit_trail(ledger_conn)
        assert [r["submission_id"] for r in results] == ["sub-2", "sub-1", "sub-1", None]

    def test_filter_by_campaign(self, ledger_conn: sqlite3.Connection) -> None:
        self._seed(ledger_conn)
        assert len(query_audit_trail(ledger_conn, campaign_id="camp-1")) == 3

    def test_filter_by_submission_and_event(self, ledger_conn: sqlite3.Connection) -> None:
        self._seed(ledger_conn)
        results = query_audit_trail(
            ledger_conn, submission_id="sub-1", event_type="budget_allocated"
        )
        assert len(results) == 1
        assert results[0]["event_type"] == "budget_allocated"

    def test_filter_by_actor(self, ledger_conn: sqlite3.Connection) -> None:
        self._seed(ledger_conn)
        [row] = query_audit_trail(ledger_conn, actor_id="bob")
        assert row["campaign_id"] == "camp-2"

    def test_date_range(self, ledger_conn: sqlite3.Connection) -> None:
        self._seed(ledger_conn)
        results = query_audit_trail(
            ledger_conn,
            from_date="2026-03-01T13:00:00.000000Z",
            to_date="2026-03-01T14:00:00.000000Z",
        )
        assert [r["event_type"] for r in results] == [
            "budget_allocated",
            "submission_transition",
        ]

    def test_limit(self, ledger_conn: sqlite3.Connection) -> None:
        self._seed(ledger_conn)
        assert len(query_audit_trail(ledger_conn, limit=2)) == 2

    def test_sql_injection_is_inert(self, ledger_conn: sqlite3.Connection) -> None:
        self._seed(ledger_conn)
        results = query_audit_trail(ledger_conn, campaign_id="camp-1' OR '1'='1")
        assert results == []
        assert len(query_audit_trail(ledger_conn)) == 4
