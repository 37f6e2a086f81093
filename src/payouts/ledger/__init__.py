"""Persistent ledger: campaigns, submissions, bundles, and budget counters."""

from payouts.ledger.budget import BudgetLedger, capped_request, raw_payout
from payouts.ledger.schema import from_db_time, init_ledger_schema, open_ledger, to_db_time
from payouts.ledger.store import LedgerStore

__all__ = [
    "BudgetLedger",
    "LedgerStore",
    "capped_request",
    "from_db_time",
    "init_ledger_schema",
    "open_ledger",
    "raw_payout",
    "to_db_time",
]
