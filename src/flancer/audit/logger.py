"""Typed writers for the negotiation audit trail.

One method per engine event; each returns the inserted row id.  Prices are
stored as their exact decimal string.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from decimal import Decimal
from typing import Any

import structlog

from flancer.audit.models import AuditEntry, EventType
from flancer.audit.store import insert_audit_entry

logger = structlog.get_logger()


class AuditLogger:
    """Record negotiation events in the audit database.

    Args:
        conn: An open SQLite connection to the audit database.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def _record(
        self,
        event_type: EventType,
        negotiation_id: str | None,
        *,
        price: Decimal | None = None,
        **fields: Any,
    ) -> int:
        entry = AuditEntry(
            event_type=event_type,
            negotiation_id=negotiation_id,
            price=None if price is None else str(price),
            **fields,
        )
        return insert_audit_entry(self._conn, entry)

    def log_negotiation_opened(
        self,
        negotiation_id: str,
        service_id: str,
        requester_id: str,
        provider_id: str,
        price: Decimal,
    ) -> int:
        """The provider's quote opened a negotiation."""
        return self._record(
            EventType.NEGOTIATION_OPENED,
            negotiation_id,
            party_id=provider_id,
            role="provider",
            negotiation_state="pending",
            price=price,
            metadata={"service_id": service_id, "requester_id": requester_id},
        )

    def log_offer(
        self,
        negotiation_id: str,
        party_id: str,
        role: str,
        price: Decimal,
        offer_count: int,
    ) -> int:
        return self._record(
            EventType.OFFER_MADE,
            negotiation_id,
            party_id=party_id,
            role=role,
            negotiation_state="pending",
            price=price,
            metadata={"offer_count": str(offer_count)},
        )

    def log_agreement(
        self,
        negotiation_id: str,
        party_id: str,
        role: str,
        price: Decimal,
        negotiation_state: str,
    ) -> int:
        """A party confirmed the current price; *negotiation_state* is the status after."""
        return self._record(
            EventType.AGREEMENT_CONFIRMED,
            negotiation_id,
            party_id=party_id,
            role=role,
            negotiation_state=negotiation_state,
            price=price,
        )

    def log_state_transition(
        self,
        negotiation_id: str,
        from_state: str,
        to_state: str,
        event: str,
        party_id: str | None = None,
    ) -> int:
        return self._record(
            EventType.STATE_TRANSITION,
            negotiation_id,
            party_id=party_id,
            negotiation_state=to_state,
            metadata={"from_state": from_state, "to_state": to_state, "event": event},
        )

    def log_job_materialized(self, negotiation_id: str, job_id: str, payment: Decimal) -> int:
        return self._record(
            EventType.JOB_MATERIALIZED,
            negotiation_id,
            negotiation_state="completed",
            price=payment,
            metadata={"job_id": job_id},
        )

    def log_declined(self, negotiation_id: str, party_id: str, role: str) -> int:
        return self._record(
            EventType.NEGOTIATION_DECLINED,
            negotiation_id,
            party_id=party_id,
            role=role,
            negotiation_state="declined",
        )

    def log_error(
        self,
        negotiation_id: str | None,
        error_code: str,
        error_message: str,
        context: str | None = None,
    ) -> int:
        """An action failed after passing validation (e.g. job materialization)."""
        metadata = {"error_code": error_code, "error_message": error_message}
        if context is not None:
            metadata["context"] = context
        return self._record(EventType.ERROR, negotiation_id, metadata=metadata)


def audit_safely(write: Callable[..., int] | None, **kwargs: Any) -> None:
    """Call the bound audit writer *write* with *kwargs*, logging instead of raising.

    Pass ``None`` when auditing is disabled.  Audit writes never decide the
    outcome of a negotiation action.
    """
    if write is None:
        return
    try:
        write(**kwargs)
    except Exception:
        writer = getattr(write, "__qualname__", repr(write))
        logger.exception("audit_write_failed", writer=writer)
