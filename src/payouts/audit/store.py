"""SQLite-backed audit trail store with indexed queries.

The audit_log table lives in the ledger database so that entries written
inside a ledger transaction commit or roll back together with the mutation
they describe.  Uses parameterized queries exclusively (never string
concatenation) to prevent SQL injection.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from payouts.audit.models import AuditEntry
from payouts.ledger.schema import DB_TIME_FORMAT, open_ledger


def init_audit_schema(conn: sqlite3.Connection) -> None:
    """Create the audit_log table and its indexes if missing.

    Args:
        conn: An open ledger connection.
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS audit_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp TEXT NOT NULL,
            event_type TEXT NOT NULL,
            campaign_id TEXT,
            submission_id TEXT,
            bundle_id TEXT,
            actor_id TEXT,
            amount INTEGER,
            from_status TEXT,
            to_status TEXT,
            metadata TEXT
        )
    """)

    conn.execute("CREATE INDEX IF NOT EXISTS idx_audit_campaign ON audit_log (campaign_id)")
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_audit_submission ON audit_log (submission_id)"
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log (timestamp)")


def open_audit_db(db_path: Path) -> sqlite3.Connection:
    """Open the ledger database for audit queries, creating the table if needed.

    Args:
        db_path: Path to the SQLite database file.

    Returns:
        An open sqlite3.Connection.
    """
    conn = open_ledger(db_path)
    init_audit_schema(conn)
    return conn


def insert_audit_entry(
    conn: sqlite3.Connection, entry: AuditEntry, *, now: datetime | None = None
) -> int:
    """Insert an audit entry into the database.

    Serializes metadata dict to JSON string if present.  When called inside
    an open transaction the row becomes part of it.

    Args:
        conn: An open database connection.
        entry: The audit entry to insert.
        now: Timestamp override, defaults to the current UTC time.

    Returns:
        The row ID of the inserted entry.
    """
    metadata_json: str | None = None
    if entry.metadata is not None:
        metadata_json = json.dumps(entry.metadata)

    timestamp = (now or datetime.now(tz=UTC)).astimezone(UTC).strftime(DB_TIME_FORMAT)

    cursor = conn.execute(
        """
        INSERT INTO audit_log (
            timestamp, event_type, campaign_id, submission_id, bundle_id,
            actor_id, amount, from_status, to_status, metadata
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            timestamp,
            entry.event_type.value,
            entry.campaign_id,
            entry.submission_id,
            entry.bundle_id,
            entry.actor_id,
            entry.amount,
            entry.from_status,
            entry.to_status,
            metadata_json,
        ),
    )
    return cursor.lastrowid or 0


def query_audit_trail(
    conn: sqlite3.Connection,
    *,
    campaign_id: str | None = None,
    submission_id: str | None = None,
    actor_id: str | None = None,
    from_date: str | None = None,
    to_date: str | None = None,
    event_type: str | None = None,
    limit: int = 50,
) -> list[dict[str, Any]]:
    """Query the audit trail with flexible filtering.

    All filters are optional. Results are ordered newest first.

    Args:
        conn: An open database connection.
        campaign_id: Filter by campaign ID (exact match).
        submission_id: Filter by submission ID (exact match).
        actor_id: Filter by acting identity (exact match).
        from_date: Filter entries on or after this ISO 8601 date.
        to_date: Filter entries on or before this ISO 8601 date.
        event_type: Filter by event type (exact match).
        limit: Maximum number of results to return (default 50).

    Returns:
        A list of dicts, one per matching audit entry, newest first.
    """
    conn.row_factory = sqlite3.Row

    conditions: list[str] = []
    params: list[str | int] = []

    for column, value in (
        ("campaign_id", campaign_id),
        ("submission_id", submission_id),
        ("actor_id", actor_id),
        ("event_type", event_type),
    ):
        if value is not None:
            conditions.append(f"{column} = ?")
            params.append(value)

    if from_date is not None:
        conditions.append("timestamp >= ?")
        params.append(from_date)

    if to_date is not None:
        conditions.append("timestamp <= ?")
        params.append(to_date)

    where_clause = ""
    if conditions:
        where_clause = "WHERE " + " AND ".join(conditions)

    query = f"SELECT * FROM audit_log {where_clause} ORDER BY timestamp DESC, id DESC LIMIT ?"
    params.append(limit)

    rows = conn.execute(query, params).fetchall()

    results: list[dict[str, Any]] = []
    for row in rows:
        row_dict = dict(row)
        if row_dict.get("metadata") is not None:
            row_dict["metadata"] = json.loads(row_dict["metadata"])
        results.append(row_dict)

    return results
