"""Domain-specific exception classes for the negotiation engine.

Every error carries a stable ``code`` so callers can show an actionable
message instead of a generic failure.
"""

from decimal import Decimal

from flancer.domain.types import NegotiationStatus


class NegotiationError(Exception):
    """Base class for all domain errors in the negotiation engine."""

    code: str = "negotiation_error"


class InvalidCounterparty(NegotiationError):
    """Raised when a referenced party id does not resolve in the directory.

    Attributes:
        party_id: The id that failed resolution.
    """

    code = "invalid_counterparty"

    def __init__(self, party_id: str, reason: str = "does not exist") -> None:
        self.party_id = party_id
        super().__init__(f"Party '{party_id}' {reason}")


class PriceOutOfRange(NegotiationError):
    """Raised when an offered price falls outside the negotiated bounds.

    Attributes:
        price: The rejected price.
        min_price: Lower bound (inclusive).
        max_price: Upper bound (inclusive).
    """

    code = "price_out_of_range"

    def __init__(self, price: Decimal, min_price: Decimal, max_price: Decimal) -> None:
        self.price = price
        self.min_price = min_price
        self.max_price = max_price
        super().__init__(
            f"price must be between ${min_price} and ${max_price} (got ${price})"
        )


class UnauthorizedParty(NegotiationError):
    """Raised when the acting party is not one of the negotiation's parties."""

    code = "unauthorized_party"

    def __init__(self, party_id: str, negotiation_id: str) -> None:
        self.party_id = party_id
        self.negotiation_id = negotiation_id
        super().__init__(
            f"Party '{party_id}' is not a participant in negotiation '{negotiation_id}'"
        )


class NegotiationNotFound(NegotiationError):
    """Raised when a negotiation id is unknown."""

    code = "negotiation_not_found"

    def __init__(self, negotiation_id: str) -> None:
        self.negotiation_id = negotiation_id
        super().__init__(f"Negotiation '{negotiation_id}' not found")


class ServiceNotFound(NegotiationError):
    """Raised when the service listing being negotiated no longer exists."""

    code = "service_not_found"

    def __init__(self, service_id: str) -> None:
        self.service_id = service_id
        super().__init__(f"Service '{service_id}' not found")


class ConcurrentModification(NegotiationError):
    """Raised when an optimistic-concurrency guard trips.

    The caller must re-read the negotiation and retry.
    """

    code = "concurrent_modification"

    def __init__(self, table: str, key: str, expected_version: int) -> None:
        self.table = table
        self.key = key
        self.expected_version = expected_version
        super().__init__(
            f"{table} '{key}' was modified concurrently "
            f"(expected version {expected_version}); re-read and retry"
        )


class InvalidTransitionError(NegotiationError):
    """Raised when an invalid state transition is attempted.

    Attributes:
        current_state: The state the machine was in when the transition was attempted.
        event: The event that was rejected.
    """

    code = "invalid_transition"

    def __init__(self, current_state: NegotiationStatus, event: str) -> None:
        self.current_state = current_state
        self.event = event
        super().__init__(f"Cannot apply event '{event}' in state '{current_state}'")


class SelfAgreementNotAllowed(NegotiationError):
    """Raised when a party tries to be the first to accept its own offer."""

    code = "self_agreement_not_allowed"

    def __init__(self, party_id: str) -> None:
        self.party_id = party_id
        super().__init__(
            f"Party '{party_id}' made the last offer and cannot accept it "
            "before the other party does"
        )


class IncompleteNegotiation(NegotiationError):
    """Raised during materialization when required negotiation data is missing."""

    code = "incomplete_negotiation"


class PartyNoLongerExists(NegotiationError):
    """Raised during materialization when a party stopped resolving."""

    code = "party_no_longer_exists"

    def __init__(self, party_id: str) -> None:
        self.party_id = party_id
        super().__init__(f"Party '{party_id}' no longer exists")


class TransientError(NegotiationError):
    """Raised on a timeout or transport failure talking to a collaborator.

    Always retriable; never treated as success.
    """

    code = "transient_error"


class RecordNotFound(NegotiationError):
    """Raised by the store when a key does not exist."""

    code = "record_not_found"

    def __init__(self, table: str, key: str) -> None:
        self.table = table
        self.key = key
        super().__init__(f"{table} '{key}' not found")


class DuplicateRecord(NegotiationError):
    """Raised by the store when an insert violates a uniqueness constraint."""

    code = "duplicate_record"

    def __init__(self, table: str, detail: str) -> None:
        self.table = table
        super().__init__(f"Duplicate record in {table}: {detail}")


class NotificationRejected(NegotiationError):
    """Raised by a notification sink when a notification fails validation."""

    code = "notification_rejected"


class InvalidDeadline(NegotiationError):
    """Raised when a proposed deadline is not in the future."""

    code = "invalid_deadline"


class InvalidServiceListing(NegotiationError):
    """Raised when a new service listing has no name or an unusable price range."""

    code = "invalid_service_listing"


class NotificationNotFound(NegotiationError):
    """Raised when a notification does not exist in the acting party's inbox."""

    code = "notification_not_found"

    def __init__(self, notification_id: str) -> None:
        self.notification_id = notification_id
        super().__init__(f"Notification '{notification_id}' not found")
