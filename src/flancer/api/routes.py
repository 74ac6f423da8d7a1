"""HTTP routes exposing the negotiation engine, the inbox and the service catalog."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response

from flancer.api.schemas import (
    CounterOfferRequest,
    CreateServiceRequest,
    InboxAction,
    MarkAllReadResponse,
    MaterializeResponse,
    PartyAction,
    ProposeRequest,
)
from flancer.directory.listings import ServiceCatalog
from flancer.domain.models import Negotiation, Offer, ServiceListing
from flancer.engine.negotiation import NegotiationEngine
from flancer.notifications.inbox import NotificationInbox
from flancer.notifications.models import Notification

router = APIRouter(prefix="/negotiations", tags=["negotiations"])
notifications_router = APIRouter(prefix="/notifications", tags=["notifications"])
services_router = APIRouter(prefix="/services", tags=["services"])


def get_engine(request: Request) -> NegotiationEngine:
    """Return the engine wired at startup."""
    engine: NegotiationEngine = request.app.state.services["engine"]
    return engine


def get_inbox(request: Request) -> NotificationInbox:
    inbox: NotificationInbox = request.app.state.services["inbox"]
    return inbox


def get_catalog(request: Request) -> ServiceCatalog:
    catalog: ServiceCatalog = request.app.state.services["catalog"]
    return catalog


Engine = Annotated[NegotiationEngine, Depends(get_engine)]
Inbox = Annotated[NotificationInbox, Depends(get_inbox)]
Catalog = Annotated[ServiceCatalog, Depends(get_catalog)]


@router.post("", status_code=201)
async def propose(body: ProposeRequest, engine: Engine) -> Negotiation:
    """Open a negotiation with the provider's quoted price."""
    return await engine.propose(
        service_id=body.service_id,
        requester_id=body.requester_id,
        provider_id=body.provider_id,
        initial_price=body.price,
        description=body.description,
        deadline=body.deadline,
    )


@router.get("/{negotiation_id}")
async def get_negotiation(negotiation_id: str, engine: Engine) -> Negotiation:
    return await engine.get_negotiation(negotiation_id)


@router.get("/{negotiation_id}/offers")
async def list_offers(negotiation_id: str, engine: Engine) -> list[Offer]:
    return await engine.list_offers(negotiation_id)


@router.post("/{negotiation_id}/counter")
async def counter_offer(
    negotiation_id: str, body: CounterOfferRequest, engine: Engine
) -> Negotiation:
    """Replace the current price; reopens agreement for both parties."""
    return await engine.counter_offer(
        negotiation_id,
        body.party(),
        body.price,
        body.message,
        expected_version=body.expected_version,
    )


@router.post("/{negotiation_id}/agree")
async def agree(negotiation_id: str, body: PartyAction, engine: Engine) -> Negotiation:
    """Agree to the current price; the second agreement creates the job."""
    return await engine.agree(
        negotiation_id, body.party(), expected_version=body.expected_version
    )


@router.post("/{negotiation_id}/decline")
async def decline(negotiation_id: str, body: PartyAction, engine: Engine) -> Negotiation:
    return await engine.decline(
        negotiation_id, body.party(), expected_version=body.expected_version
    )


@router.post("/{negotiation_id}/materialize")
async def materialize(negotiation_id: str, engine: Engine) -> MaterializeResponse:
    """Retry job creation for a negotiation stuck in ``both_agreed``."""
    job_id = await engine.retry_materialization(negotiation_id)
    return MaterializeResponse(negotiation_id=negotiation_id, job_id=job_id)


@notifications_router.get("")
async def list_notifications(
    inbox: Inbox, party_id: str, unread_only: Annotated[bool, Query()] = False
) -> list[Notification]:
    """Return a party's notifications, newest first."""
    return await inbox.list_for(party_id, unread_only=unread_only)


@notifications_router.post("/read-all")
async def mark_all_read(body: InboxAction, inbox: Inbox) -> MarkAllReadResponse:
    updated = await inbox.mark_all_read(body.party_id)
    return MarkAllReadResponse(party_id=body.party_id, updated=updated)


@notifications_router.post("/{notification_id}/read")
async def mark_read(notification_id: str, body: InboxAction, inbox: Inbox) -> Notification:
    return await inbox.mark_read(notification_id, body.party_id)


@notifications_router.delete("/{notification_id}", status_code=204)
async def delete_notification(notification_id: str, party_id: str, inbox: Inbox) -> Response:
    await inbox.delete(notification_id, party_id)
    return Response(status_code=204)


@services_router.post("", status_code=201)
async def create_service(body: CreateServiceRequest, catalog: Catalog) -> ServiceListing:
    """Publish a provider's service listing and its price range."""
    return await catalog.create_listing(
        provider_id=body.provider_id,
        service_name=body.service_name,
        min_price=body.min_price,
        max_price=body.max_price,
    )


@services_router.get("/{service_id}")
async def get_service(service_id: str, catalog: Catalog) -> ServiceListing:
    return await catalog.get_listing(service_id)
