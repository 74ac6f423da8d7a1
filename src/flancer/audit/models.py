"""Audit trail models for tracking negotiation events."""

from enum import StrEnum

from pydantic import BaseModel


class EventType(StrEnum):
    """Types of events tracked in the audit trail."""

    NEGOTIATION_OPENED = "negotiation_opened"
    OFFER_MADE = "offer_made"
    AGREEMENT_CONFIRMED = "agreement_confirmed"
    STATE_TRANSITION = "state_transition"
    JOB_MATERIALIZED = "job_materialized"
    NEGOTIATION_DECLINED = "negotiation_declined"
    ERROR = "error"


class AuditEntry(BaseModel):
    """A single audit trail entry.

    All fields except event_type are optional to accommodate different
    event types (e.g., an error may not have a party).
    """

    event_type: EventType
    negotiation_id: str | None = None
    party_id: str | None = None
    role: str | None = None
    negotiation_state: str | None = None
    price: str | None = None
    metadata: dict[str, str] | None = None
