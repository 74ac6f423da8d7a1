"""Pydantic v2 models for negotiation records.

Monetary fields use ``Decimal`` for exact arithmetic -- float inputs are
rejected.  Records round-trip through the store as plain dicts via
``model_dump(mode="json")`` and ``model_validate``.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from flancer.domain.types import JobStatus, NegotiationStatus, PartyRole


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(tz=UTC)


def new_id() -> str:
    """Generate a new record identifier."""
    return str(uuid.uuid4())


def offer_id_for(negotiation_id: str, offer_count: int) -> str:
    """Return the id of the *offer_count*-th offer of a negotiation.

    Deterministic so that re-recording the same offer collides instead of
    duplicating it.
    """
    return f"{negotiation_id}:{offer_count}"


def _reject_float(v: object) -> object:
    if isinstance(v, float):
        raise ValueError("Use Decimal or string, not float, for monetary values")
    return v


class Party(BaseModel):
    """A party acting on a negotiation, with an explicit role."""

    model_config = ConfigDict(frozen=True)

    party_id: str
    role: PartyRole

    @field_validator("party_id")
    @classmethod
    def party_id_must_not_be_empty(cls, v: str) -> str:
        """Ensure party_id is not empty or whitespace-only."""
        if not v.strip():
            raise ValueError("party_id must not be empty")
        return v


class ServiceListing(BaseModel):
    """A provider's service listing with its allowed price range."""

    service_id: str
    service_name: str
    provider_id: str
    min_price: Decimal
    max_price: Decimal

    @field_validator("min_price", "max_price", mode="before")
    @classmethod
    def reject_float_inputs(cls, v: object) -> object:
        """Reject float inputs for monetary fields to prevent precision errors."""
        return _reject_float(v)

    @model_validator(mode="after")
    def min_price_must_not_exceed_max_price(self) -> ServiceListing:
        """Ensure min_price does not exceed max_price."""
        if self.min_price > self.max_price:
            raise ValueError(
                f"min_price ({self.min_price}) must not exceed max_price ({self.max_price})"
            )
        return self


class Negotiation(BaseModel):
    """The versioned aggregate tracking a price discussion for a service.

    ``version`` is the optimistic-concurrency token; the store increments it
    on every update.
    """

    negotiation_id: str
    service_id: str
    service_name: str = ""
    requester_id: str
    provider_id: str
    current_price: Decimal
    min_price: Decimal
    max_price: Decimal
    status: NegotiationStatus = NegotiationStatus.PENDING
    last_offer_by: PartyRole = PartyRole.PROVIDER
    offer_count: int = 1
    deadline: datetime | None = None
    job_description: str | None = None
    requester_agreed: bool = False
    provider_agreed: bool = False
    final_agreed_price: Decimal | None = None
    job_id: str | None = None
    version: int = 1
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator(
        "current_price", "min_price", "max_price", "final_agreed_price", mode="before"
    )
    @classmethod
    def reject_float_inputs(cls, v: object) -> object:
        """Reject float inputs for monetary fields to prevent precision errors."""
        return _reject_float(v)

    @model_validator(mode="after")
    def current_price_within_bounds(self) -> Negotiation:
        """Ensure current_price lies within [min_price, max_price]."""
        if not self.min_price <= self.current_price <= self.max_price:
            raise ValueError(
                f"current_price ({self.current_price}) outside "
                f"[{self.min_price}, {self.max_price}]"
            )
        return self

    def party_id_for(self, role: PartyRole) -> str:
        """Return the id of the party playing *role*."""
        return self.requester_id if role is PartyRole.REQUESTER else self.provider_id

    def has_agreed(self, role: PartyRole) -> bool:
        """Return whether the party playing *role* has agreed to the current price."""
        return self.requester_agreed if role is PartyRole.REQUESTER else self.provider_agreed

    @property
    def both_agreed(self) -> bool:
        return self.requester_agreed and self.provider_agreed


class Offer(BaseModel):
    """One immutable priced proposal within a negotiation's history."""

    model_config = ConfigDict(frozen=True)

    offer_id: str = Field(default_factory=new_id)
    negotiation_id: str
    offered_by: PartyRole
    party_id: str
    price: Decimal
    message: str | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("price", mode="before")
    @classmethod
    def reject_float_inputs(cls, v: object) -> object:
        """Reject float inputs for monetary fields to prevent precision errors."""
        return _reject_float(v)


class AgreementConfirmation(BaseModel):
    """A party's recorded acceptance of the negotiation's current price."""

    confirmation_id: str = Field(default_factory=new_id)
    negotiation_id: str
    party_id: str
    role: PartyRole
    agreed_price: Decimal
    active: bool = True
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("agreed_price", mode="before")
    @classmethod
    def reject_float_inputs(cls, v: object) -> object:
        """Reject float inputs for monetary fields to prevent precision errors."""
        return _reject_float(v)


class Job(BaseModel):
    """The materialized outcome of a mutually agreed negotiation."""

    job_id: str = Field(default_factory=new_id)
    negotiation_id: str
    service_id: str
    requester_id: str
    provider_id: str
    status: JobStatus = JobStatus.IN_PROGRESS
    payment: Decimal
    deadline: datetime
    description: str
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("payment", mode="before")
    @classmethod
    def reject_float_inputs(cls, v: object) -> object:
        """Reject float inputs for monetary fields to prevent precision errors."""
        return _reject_float(v)
