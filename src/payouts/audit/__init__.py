"""Audit trail: models, storage, logger, and CLI for ledger event tracking."""

from payouts.audit.cli import build_parser
from payouts.audit.logger import AuditLogger
from payouts.audit.models import AuditEntry, EventType
from payouts.audit.store import (
    init_audit_schema,
    insert_audit_entry,
    open_audit_db,
    query_audit_trail,
)

__all__ = [
    "AuditEntry",
    "AuditLogger",
    "EventType",
    "build_parser",
    "init_audit_schema",
    "insert_audit_entry",
    "open_audit_db",
    "query_audit_trail",
]
