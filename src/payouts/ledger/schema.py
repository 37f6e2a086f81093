"""SQLite schema for the payout ledger.

The store is the sole arbiter of ordering: uniqueness of (campaign, post),
single use of an anti-spam fee proof, single use of a payout transaction,
one pending bundle per requester, and the budget bounds are all enforced
here by constraints rather than by application-level checks.
"""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path

DB_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def to_db_time(value: datetime) -> str:
    """Serialize an aware datetime to the fixed-width UTC text the ledger sorts by."""
    return value.astimezone(UTC).strftime(DB_TIME_FORMAT)


def from_db_time(value: str | None) -> datetime | None:
    """Parse ledger timestamp text back into an aware UTC datetime."""
    if value is None:
        return None
    return datetime.strptime(value, DB_TIME_FORMAT).replace(tzinfo=UTC)


def open_ledger(db_path: Path | str, *, busy_timeout_ms: int = 5000) -> sqlite3.Connection:
    """Open a ledger connection configured for explicit transactions.

    ``isolation_level=None`` disables the sqlite3 module's implicit
    transaction handling so :meth:`LedgerStore.transaction` can issue
    ``BEGIN IMMEDIATE`` itself.

    Args:
        db_path: Path to the SQLite file, or ``":memory:"``.
        busy_timeout_ms: How long a writer waits for a competing writer.

    Returns:
        An open sqlite3.Connection with WAL mode and foreign keys enabled.
    """
    conn = sqlite3.connect(
        str(db_path),
        isolation_level=None,
        check_same_thread=False,
        timeout=busy_timeout_ms / 1000,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
    return conn


def init_ledger_schema(conn: sqlite3.Connection) -> None:
    """Create all ledger tables and indexes if they do not already exist.

    Args:
        conn: An open connection from :func:`open_ledger`.
    """
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS campaigns (
            campaign_id TEXT PRIMARY KEY,
            creator_id TEXT NOT NULL,
            task_type TEXT NOT NULL,
            status TEXT NOT NULL,
            total_budget INTEGER NOT NULL CHECK (total_budget > 0),
            budget_remaining INTEGER NOT NULL,
            last_allocation INTEGER NOT NULL DEFAULT 0,
            cpm_rate INTEGER NOT NULL,
            min_views INTEGER NOT NULL DEFAULT 0,
            min_payout_threshold INTEGER NOT NULL DEFAULT 0,
            max_budget_per_user_percent TEXT,
            max_budget_per_post_percent TEXT,
            guidelines_json TEXT NOT NULL DEFAULT '{"dos": [], "donts": []}',
            deadline_at TEXT,
            payment_token_json TEXT NOT NULL,
            refund_tx_ref TEXT,
            refund_amount INTEGER,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            CHECK (budget_remaining >= 0 AND budget_remaining <= total_budget)
        );

        CREATE TABLE IF NOT EXISTS payment_bundles (
            bundle_id TEXT PRIMARY KEY,
            campaign_id TEXT NOT NULL REFERENCES campaigns (campaign_id),
            requester_id TEXT NOT NULL,
            status TEXT NOT NULL,
            total_amount INTEGER NOT NULL CHECK (total_amount >= 0),
            payment_tx_ref TEXT,
            sequence_index INTEGER,
            created_at TEXT NOT NULL,
            paid_at TEXT
        );

        CREATE UNIQUE INDEX IF NOT EXISTS uq_bundle_pending_per_requester
            ON payment_bundles (campaign_id, requester_id)
            WHERE status = 'pending';

        CREATE UNIQUE INDEX IF NOT EXISTS uq_bundle_payment_tx
            ON payment_bundles (payment_tx_ref)
            WHERE payment_tx_ref IS NOT NULL;

        CREATE TABLE IF NOT EXISTS submissions (
            submission_id TEXT PRIMARY KEY,
            campaign_id TEXT NOT NULL REFERENCES campaigns (campaign_id),
            submitter_id TEXT NOT NULL,
            platform TEXT NOT NULL,
            post_id TEXT NOT NULL,
            post_url TEXT NOT NULL,
            fee_tx_ref TEXT NOT NULL,
            status TEXT NOT NULL,
            engagement_count INTEGER,
            payout_amount INTEGER CHECK (payout_amount IS NULL OR payout_amount >= 0),
            rejection_reason TEXT,
            content_check_passed INTEGER,
            content_check_explanation TEXT,
            bundle_id TEXT REFERENCES payment_bundles (bundle_id),
            payment_tx_ref TEXT,
            payment_sequence_index INTEGER,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            CONSTRAINT uq_submission_post UNIQUE (campaign_id, post_id),
            CONSTRAINT uq_submission_fee UNIQUE (fee_tx_ref)
        );

        CREATE INDEX IF NOT EXISTS idx_submission_submitter
            ON submissions (campaign_id, submitter_id, status);
        CREATE INDEX IF NOT EXISTS idx_submission_bundle ON submissions (bundle_id);

        CREATE TABLE IF NOT EXISTS creator_bans (
            creator_id TEXT NOT NULL,
            submitter_id TEXT NOT NULL,
            reason TEXT,
            created_at TEXT NOT NULL,
            PRIMARY KEY (creator_id, submitter_id)
        );

        CREATE TABLE IF NOT EXISTS linked_identities (
            user_id TEXT PRIMARY KEY,
            platform TEXT NOT NULL,
            platform_user_id TEXT NOT NULL,
            platform_username TEXT,
            access_token TEXT,
            expires_at TEXT
        );

        CREATE TABLE IF NOT EXISTS referral_links (
            referral_id TEXT PRIMARY KEY,
            referrer_id TEXT NOT NULL,
            referred_user_id TEXT NOT NULL UNIQUE,
            referrer_fee_pct INTEGER NOT NULL CHECK (referrer_fee_pct BETWEEN 0 AND 100),
            active INTEGER NOT NULL DEFAULT 1
        );

        CREATE TABLE IF NOT EXISTS referral_earnings (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            referral_id TEXT NOT NULL,
            referrer_id TEXT NOT NULL,
            referred_user_id TEXT NOT NULL,
            campaign_id TEXT NOT NULL,
            bundle_id TEXT NOT NULL UNIQUE,
            total_amount INTEGER NOT NULL,
            referrer_amount INTEGER NOT NULL,
            platform_amount INTEGER NOT NULL,
            tx_ref TEXT,
            created_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS notifications (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            type TEXT NOT NULL,
            title TEXT NOT NULL,
            body TEXT NOT NULL,
            link TEXT NOT NULL,
            created_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications (user_id);
    """)
