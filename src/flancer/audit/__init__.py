"""Audit trail: models, storage, logger, and CLI for negotiation event tracking."""

from flancer.audit.cli import build_parser
from flancer.audit.logger import AuditLogger, audit_safely
from flancer.audit.models import AuditEntry, EventType
from flancer.audit.store import (
    close_audit_db,
    count_events,
    init_audit_db,
    insert_audit_entry,
    query_audit_trail,
)

__all__ = [
    "AuditEntry",
    "AuditLogger",
    "EventType",
    "audit_safely",
    "build_parser",
    "close_audit_db",
    "count_events",
    "init_audit_db",
    "insert_audit_entry",
    "query_audit_trail",
]
