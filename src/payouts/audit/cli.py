"""Command-line access to the payout audit trail.

Filters by campaign, submission, actor, event type and time window, and
prints either an aligned table or JSON.  ``--last`` accepts a relative
window such as ``90m``, ``24h``, ``7d`` or ``2w``.

Usage::

    payouts-audit --campaign camp_123 --last 7d
    python -m payouts.audit.cli --submission sub_456 --format json
"""

from __future__ import annotations

import argparse
import json
import re
import sqlite3
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from payouts.audit.models import EventType
from payouts.audit.store import open_audit_db, query_audit_trail
from payouts.ledger.schema import DB_TIME_FORMAT

_WINDOW = re.compile(r"^(\d+)([mhdw])$")
_WINDOW_UNITS = {"m": "minutes", "h": "hours", "d": "days", "w": "weeks"}

# (header, row key, column width)
_COLUMNS: list[tuple[str, str, int]] = [
    ("Timestamp", "timestamp", 27),
    ("Event", "event_type", 22),
    ("Campaign", "campaign_id", 15),
    ("Submission", "submission_id", 15),
    ("Actor", "actor_id", 12),
    ("Amount", "amount", 14),
    ("Status", "status", 28),
]


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for audit trail queries."""
    parser = argparse.ArgumentParser(
        prog="payouts-audit", description="Query the campaign payout audit trail"
    )

    filters = parser.add_argument_group("filters")
    filters.add_argument("--campaign", help="Campaign ID")
    filters.add_argument("--submission", help="Submission ID")
    filters.add_argument("--actor", help="Acting user ID")
    filters.add_argument(
        "--event-type",
        choices=[e.value for e in EventType],
        help="Only entries of this event type",
    )
    filters.add_argument("--from-date", help="Earliest timestamp, ISO 8601")
    filters.add_argument("--to-date", help="Latest timestamp, ISO 8601")
    filters.add_argument(
        "--last",
        help="Relative window ending now, overrides --from-date (e.g. 90m, 24h, 7d, 2w)",
    )

    parser.add_argument(
        "--format",
        choices=["table", "json"],
        default="table",
        dest="output_format",
        help="Output format (default: table)",
    )
    parser.add_argument("--limit", type=int, default=50, help="Row limit (default: 50)")
    parser.add_argument(
        "--db",
        default="data/ledger.db",
        help="Ledger database holding the audit_log table (default: data/ledger.db)",
    )
    return parser


def parse_last_duration(last: str, *, now: datetime | None = None) -> str:
    """Turn a relative window such as ``7d`` into the ledger timestamp it starts at.

    Args:
        last: A count followed by ``m``, ``h``, ``d`` or ``w``.
        now: Reference time, defaults to the current UTC time.

    Raises:
        ValueError: If *last* does not match the window syntax.
    """
    match = _WINDOW.match(last or "")
    if match is None:
        raise ValueError(
            f"Unrecognized duration format: {last!r}. Use a count followed by m, h, d or w."
        )
    count, unit = match.groups()
    start = (now or datetime.now(tz=UTC)) - timedelta(**{_WINDOW_UNITS[unit]: int(count)})
    return start.astimezone(UTC).strftime(DB_TIME_FORMAT)


def _cell(value: object, width: int) -> str:
    text = "" if value is None else str(value)
    if len(text) > width:
        text = text[: width - 3] + "..."
    return text.ljust(width)


def _status(row: dict[str, Any]) -> str:
    to_status = row.get("to_status") or ""
    if row.get("from_status"):
        return f"{row['from_status']}->{to_status}"
    return to_status


def format_table(results: list[dict[str, Any]]) -> str:
    """Render audit entries as fixed-width columns, one entry per line.

    Values wider than their column are cut with an ellipsis.  A footer
    sums the amounts shown.
    """
    if not results:
        return "No results found."

    header = "  ".join(_cell(title, width) for title, _, width in _COLUMNS).rstrip()
    lines = [header, "-" * len(header)]
    for row in results:
        values = {**row, "status": _status(row)}
        lines.append(
            "  ".join(_cell(values.get(key), width) for _, key, width in _COLUMNS).rstrip()
        )

    total = sum(row.get("amount") or 0 for row in results)
    lines.append("")
    lines.append(f"{len(results)} entries, amount total {total}")
    return "\n".join(lines)


def format_json(results: list[dict[str, Any]]) -> str:
    """Render audit entries as an indented JSON array."""
    return json.dumps(results, indent=2)


def _open(db: str) -> sqlite3.Connection:
    db_path = Path(db)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return open_audit_db(db_path)


def main(argv: list[str] | None = None) -> None:
    """Entry point for ``payouts-audit``."""
    args = build_parser().parse_args(argv)
    from_date = parse_last_duration(args.last) if args.last else args.from_date

    conn = _open(args.db)
    try:
        results = query_audit_trail(
            conn,
            campaign_id=args.campaign,
            submission_id=args.submission,
            actor_id=args.actor,
            from_date=from_date,
            to_date=args.to_date,
            event_type=args.event_type,
            limit=args.limit,
        )
    finally:
        conn.close()

    render = format_json if args.output_format == "json" else format_table
    print(render(results))


if __name__ == "__main__":
    main()
