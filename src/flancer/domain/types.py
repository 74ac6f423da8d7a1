"""Domain enumerations for the negotiation lifecycle."""

from enum import StrEnum


class NegotiationStatus(StrEnum):
    """States in the negotiation lifecycle."""

    PENDING = "pending"
    BOTH_AGREED = "both_agreed"
    DECLINED = "declined"
    COMPLETED = "completed"


class PartyRole(StrEnum):
    """The side a party takes in a negotiation."""

    REQUESTER = "requester"
    PROVIDER = "provider"

    @property
    def counterpart(self) -> "PartyRole":
        """Return the opposite role."""
        if self is PartyRole.REQUESTER:
            return PartyRole.PROVIDER
        return PartyRole.REQUESTER


class JobStatus(StrEnum):
    """Statuses the engine gives a materialized job.

    A job left unlinked by an interrupted materialization is ``cancelled``
    when its negotiation reopens or ends.
    """

    IN_PROGRESS = "in_progress"
    CANCELLED = "cancelled"


class NotificationType(StrEnum):
    """Kinds of human-readable events delivered to parties."""

    PRICE_PROPOSAL = "price_proposal"
    COUNTER_OFFER = "counter_offer"
    AGREEMENT_PENDING = "agreement_pending"
    NEGOTIATION_DECLINED = "negotiation_declined"
    JOB_CREATED = "job_created"


# Notification types whose metadata must identify the service being negotiated.
SERVICE_SCOPED_NOTIFICATIONS: frozenset[NotificationType] = frozenset(
    {NotificationType.PRICE_PROPOSAL, NotificationType.COUNTER_OFFER}
)
