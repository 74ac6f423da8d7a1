"""Counterparty and record validation helpers shared by the engine.

Every collaborator call here is bounded by a timeout; a timeout surfaces as
``TransientError`` rather than a failed validation.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
from decimal import Decimal

import structlog

from flancer.directory.service import DirectoryService
from flancer.domain.errors import (
    InvalidCounterparty,
    InvalidDeadline,
    NegotiationError,
    NegotiationNotFound,
    PriceOutOfRange,
    RecordNotFound,
    ServiceNotFound,
    UnauthorizedParty,
)
from flancer.domain.models import (
    AgreementConfirmation,
    Negotiation,
    Party,
    ServiceListing,
    utcnow,
)
from flancer.resilience.timeouts import bounded
from flancer.state.store import RecordStore

logger = structlog.get_logger()


def ensure_price_in_range(price: Decimal, min_price: Decimal, max_price: Decimal) -> None:
    """Reject *price* unless it lies within ``[min_price, max_price]``.

    Raises:
        PriceOutOfRange: If the price is outside the bounds.
        TypeError: If *price* is a float.
    """
    if isinstance(price, float):
        raise TypeError("Use Decimal or string, not float, for monetary values")
    if price < min_price or price > max_price:
        raise PriceOutOfRange(price, min_price, max_price)


def ensure_future_deadline(deadline: datetime | None) -> None:
    """Reject a deadline that is not strictly in the future.

    Raises:
        InvalidDeadline: If *deadline* is naive or already passed.
    """
    if deadline is None:
        return
    if deadline.tzinfo is None:
        raise InvalidDeadline("Deadline must include a timezone")
    if deadline <= utcnow():
        raise InvalidDeadline("Deadline must be in the future")


def authorize(negotiation: Negotiation, party: Party) -> None:
    """Check that *party* plays its claimed role in *negotiation*.

    Raises:
        UnauthorizedParty: If the id does not match the negotiation's party
            for that role.
    """
    if negotiation.party_id_for(party.role) != party.party_id:
        raise UnauthorizedParty(party.party_id, negotiation.negotiation_id)


async def require_parties(
    directory: DirectoryService,
    party_ids: Iterable[str],
    *,
    timeout: float,
    error: Callable[[str], NegotiationError] = InvalidCounterparty,
) -> None:
    """Resolve every id in *party_ids* through the directory.

    Args:
        directory: The directory service.
        party_ids: Ids that must all resolve.
        timeout: Per-call timeout in seconds.
        error: Exception type raised with the first id that fails resolution.

    Raises:
        InvalidCounterparty: (or *error*) for the first unresolved id.
        TransientError: If the directory timed out.
    """
    for party_id in party_ids:
        exists = await bounded(
            directory.exists(party_id), operation="directory.exists", timeout=timeout
        )
        if not exists:
            logger.info("Party failed directory resolution", party_id=party_id)
            raise error(party_id)


async def load_negotiation(
    store: RecordStore, negotiation_id: str, *, timeout: float
) -> Negotiation:
    """Fetch a negotiation by id.

    Raises:
        NegotiationNotFound: If the id is unknown.
    """
    try:
        row = await bounded(
            store.get("negotiations", negotiation_id),
            operation="store.get(negotiations)",
            timeout=timeout,
        )
    except RecordNotFound as exc:
        raise NegotiationNotFound(negotiation_id) from exc
    return Negotiation.model_validate(row)


async def load_service(store: RecordStore, service_id: str, *, timeout: float) -> ServiceListing:
    """Fetch a service listing by id.

    Raises:
        ServiceNotFound: If the listing does not exist.
    """
    try:
        row = await bounded(
            store.get("services", service_id),
            operation="store.get(services)",
            timeout=timeout,
        )
    except RecordNotFound as exc:
        raise ServiceNotFound(service_id) from exc
    return ServiceListing.model_validate(row)


async def active_confirmations(
    store: RecordStore,
    negotiation_id: str,
    *,
    timeout: float,
    party_id: str | None = None,
) -> list[AgreementConfirmation]:
    """Return the active agreement confirmations of a negotiation.

    Args:
        store: The record store.
        negotiation_id: The negotiation to inspect.
        timeout: Per-call timeout in seconds.
        party_id: Restrict to one party's confirmations.
    """
    filters: dict[str, object] = {"negotiation_id": negotiation_id, "active": True}
    if party_id is not None:
        filters["party_id"] = party_id
    rows = await bounded(
        store.find("agreement_confirmations", filters),
        operation="store.find(agreement_confirmations)",
        timeout=timeout,
    )
    return [AgreementConfirmation.model_validate(row) for row in rows]


async def deactivate_confirmations(
    store: RecordStore,
    negotiation_id: str,
    *,
    timeout: float,
    party_id: str | None = None,
) -> int:
    """Mark active confirmations inactive; they no longer apply to the price.

    Returns:
        The number of confirmations deactivated.
    """
    confirmations = await active_confirmations(
        store, negotiation_id, timeout=timeout, party_id=party_id
    )
    for confirmation in confirmations:
        await bounded(
            store.update(
                "agreement_confirmations", confirmation.confirmation_id, {"active": False}
            ),
            operation="store.update(agreement_confirmations)",
            timeout=timeout,
        )
    return len(confirmations)
