"""Builders for the notifications each negotiation transition produces."""

from __future__ import annotations

from decimal import Decimal

from flancer.domain.models import Job, Negotiation, Offer
from flancer.domain.types import NotificationType, PartyRole
from flancer.notifications.models import OutboundNotification


def _base_metadata(negotiation: Negotiation) -> dict[str, str]:
    return {
        "negotiation_id": negotiation.negotiation_id,
        "service_id": negotiation.service_id,
        "service_name": negotiation.service_name,
        "offer_count": str(negotiation.offer_count),
        "last_offer_by": negotiation.last_offer_by.value,
    }


def _service_label(negotiation: Negotiation) -> str:
    return negotiation.service_name or negotiation.service_id


def _money(amount: Decimal) -> str:
    return f"${amount}"


def price_proposal(negotiation: Negotiation) -> OutboundNotification:
    """Tell the requester the provider has quoted a price."""
    metadata = _base_metadata(negotiation)
    metadata["proposed_price"] = str(negotiation.current_price)
    return OutboundNotification(
        party_id=negotiation.requester_id,
        event_type=NotificationType.PRICE_PROPOSAL,
        title="New price proposal",
        message=(
            f"A price of {_money(negotiation.current_price)} was proposed for "
            f"{_service_label(negotiation)}."
        ),
        metadata=metadata,
    )


def counter_offer(negotiation: Negotiation, offer: Offer) -> OutboundNotification:
    """Tell the other party a counter-offer was made."""
    metadata = _base_metadata(negotiation)
    metadata["proposed_price"] = str(offer.price)
    message = (
        f"The {offer.offered_by.value} countered with {_money(offer.price)} for "
        f"{_service_label(negotiation)}."
    )
    if offer.message:
        message += f" Message: {offer.message}"
    return OutboundNotification(
        party_id=negotiation.party_id_for(offer.offered_by.counterpart),
        event_type=NotificationType.COUNTER_OFFER,
        title="Counter-offer received",
        message=message,
        metadata=metadata,
    )


def agreement_pending(negotiation: Negotiation, agreed_by: PartyRole) -> OutboundNotification:
    """Tell the other party an agreement is awaiting their confirmation."""
    waiting_for = agreed_by.counterpart
    metadata = _base_metadata(negotiation)
    metadata.update(
        {
            "proposed_price": str(negotiation.current_price),
            "agreed_by": agreed_by.value,
            "waiting_for": waiting_for.value,
        }
    )
    return OutboundNotification(
        party_id=negotiation.party_id_for(waiting_for),
        event_type=NotificationType.AGREEMENT_PENDING,
        title="Agreement awaiting your confirmation",
        message=(
            f"The {agreed_by.value} agreed to {_money(negotiation.current_price)} for "
            f"{_service_label(negotiation)}. Confirm to start the job."
        ),
        metadata=metadata,
    )


def negotiation_declined(
    negotiation: Negotiation, declined_by: PartyRole
) -> OutboundNotification:
    """Tell the counterparty the negotiation was declined."""
    return OutboundNotification(
        party_id=negotiation.party_id_for(declined_by.counterpart),
        event_type=NotificationType.NEGOTIATION_DECLINED,
        title="Negotiation declined",
        message=f"The {declined_by.value} declined the negotiation for "
        f"{_service_label(negotiation)}.",
        metadata=_base_metadata(negotiation),
    )


def job_created(negotiation: Negotiation, job: Job) -> list[OutboundNotification]:
    """Tell both parties the agreed negotiation became a job."""
    metadata = _base_metadata(negotiation)
    metadata.update({"job_id": job.job_id, "final_price": str(job.payment)})
    message = (
        f"A job for {_service_label(negotiation)} was created at "
        f"{_money(job.payment)}, due {job.deadline:%Y-%m-%d}."
    )
    return [
        OutboundNotification(
            party_id=party_id,
            event_type=NotificationType.JOB_CREATED,
            title="Job created",
            message=message,
            metadata=metadata,
        )
        for party_id in (negotiation.requester_id, negotiation.provider_id)
    ]
