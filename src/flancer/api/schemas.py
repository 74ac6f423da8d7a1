"""Request and response bodies for the negotiation, inbox and catalog HTTP API."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from flancer.domain.models import Party
from flancer.domain.types import PartyRole


class ProposeRequest(BaseModel):
    """Body for opening a negotiation with the provider's quote."""

    service_id: str
    requester_id: str
    provider_id: str
    price: Decimal
    description: str | None = None
    deadline: datetime | None = None


class PartyAction(BaseModel):
    """Body shared by every action taken by one party.

    ``expected_version`` is the negotiation version the client last saw;
    when supplied a stale view is rejected with 409.
    """

    party_id: str
    role: PartyRole
    expected_version: int | None = None

    def party(self) -> Party:
        return Party(party_id=self.party_id, role=self.role)


class CounterOfferRequest(PartyAction):
    """Body for a counter-offer."""

    price: Decimal
    message: str | None = None


class InboxAction(BaseModel):
    """Body identifying whose inbox an action applies to."""

    party_id: str


class MarkAllReadResponse(BaseModel):
    party_id: str
    updated: int


class CreateServiceRequest(BaseModel):
    """Body for publishing a service listing."""

    provider_id: str
    service_name: str
    min_price: Decimal
    max_price: Decimal


class MaterializeResponse(BaseModel):
    """Result of a materialization retry."""

    negotiation_id: str
    job_id: str


class ErrorResponse(BaseModel):
    """Distinguishable reason for a rejected action."""

    error: str
    message: str
