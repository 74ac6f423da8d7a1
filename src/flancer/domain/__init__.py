"""Domain types, models, and errors for the negotiation engine."""

from flancer.domain.errors import (
    ConcurrentModification,
    DuplicateRecord,
    IncompleteNegotiation,
    InvalidCounterparty,
    InvalidDeadline,
    InvalidServiceListing,
    InvalidTransitionError,
    NegotiationError,
    NegotiationNotFound,
    NotificationNotFound,
    NotificationRejected,
    PartyNoLongerExists,
    PriceOutOfRange,
    RecordNotFound,
    SelfAgreementNotAllowed,
    ServiceNotFound,
    TransientError,
    UnauthorizedParty,
)
from flancer.domain.models import (
    AgreementConfirmation,
    Job,
    Negotiation,
    Offer,
    Party,
    ServiceListing,
)
from flancer.domain.types import JobStatus, NegotiationStatus, NotificationType, PartyRole

__all__ = [
    "AgreementConfirmation",
    "ConcurrentModification",
    "DuplicateRecord",
    "IncompleteNegotiation",
    "InvalidCounterparty",
    "InvalidDeadline",
    "InvalidServiceListing",
    "InvalidTransitionError",
    "Job",
    "JobStatus",
    "Negotiation",
    "NegotiationError",
    "NegotiationNotFound",
    "NegotiationStatus",
    "NotificationNotFound",
    "NotificationRejected",
    "NotificationType",
    "Offer",
    "Party",
    "PartyNoLongerExists",
    "PartyRole",
    "PriceOutOfRange",
    "RecordNotFound",
    "SelfAgreementNotAllowed",
    "ServiceListing",
    "ServiceNotFound",
    "TransientError",
    "UnauthorizedParty",
]
