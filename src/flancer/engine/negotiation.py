"""Negotiation lifecycle engine: propose, counter, agree, decline.

Each action follows the same shape: read the negotiation, validate the
acting party and the transition, write the negotiation guarded by its
``version``, then append the Offer row, record the audit trail, and queue
notifications.  The guarded write comes first so a request that loses a race
leaves no Offer behind.  An agreement confirmation is the exception: it is
written before the flag it backs, and a stale one is harmless because
materialization only counts confirmations at the agreed price.

Offer ids derive from ``offer_count``, so an Offer whose insert failed after
the write is restored by the next action on the negotiation.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any

import structlog

from flancer.audit.logger import AuditLogger, audit_safely
from flancer.directory.service import DirectoryService
from flancer.domain.errors import (
    ConcurrentModification,
    DuplicateRecord,
    InvalidCounterparty,
    InvalidTransitionError,
    NegotiationError,
    RecordNotFound,
    SelfAgreementNotAllowed,
)
from flancer.domain.models import (
    AgreementConfirmation,
    Negotiation,
    Offer,
    Party,
    new_id,
    offer_id_for,
    utcnow,
)
from flancer.domain.types import NegotiationStatus, PartyRole
from flancer.engine.materialization import JobMaterializer
from flancer.engine.validation import (
    active_confirmations,
    authorize,
    deactivate_confirmations,
    ensure_future_deadline,
    ensure_price_in_range,
    load_negotiation,
    load_service,
    require_parties,
)
from flancer.notifications import messages
from flancer.notifications.dispatcher import NotificationDispatcher
from flancer.observability.metrics import CONCURRENT_MODIFICATIONS, NEGOTIATIONS_OPENED
from flancer.resilience.timeouts import bounded
from flancer.state.store import RecordStore
from flancer.state_machine import NegotiationEvent, NegotiationStateMachine

logger = structlog.get_logger()


class NegotiationEngine:
    """Drive a price negotiation between a requester and a provider.

    Args:
        store: Persistent store for negotiations, offers, confirmations and jobs.
        directory: Resolves party ids to active accounts.
        dispatcher: Outbound notification queue.
        audit_logger: Optional audit trail; write failures are logged only.
        call_timeout: Per collaborator call timeout in seconds.
        default_deadline_days: Job deadline offset when a negotiation has none.
        allow_self_agreement: When ``False`` the party that made the last offer
            cannot be the first to agree to it.
    """

    def __init__(
        self,
        store: RecordStore,
        directory: DirectoryService,
        dispatcher: NotificationDispatcher,
        *,
        audit_logger: AuditLogger | None = None,
        call_timeout: float = 5.0,
        default_deadline_days: int = 7,
        allow_self_agreement: bool = False,
    ) -> None:
        self._store = store
        self._directory = directory
        self._dispatcher = dispatcher
        self._audit = audit_logger
        self._timeout = call_timeout
        self._allow_self_agreement = allow_self_agreement
        self.materializer = JobMaterializer(
            store,
            directory,
            dispatcher,
            audit_logger=audit_logger,
            call_timeout=call_timeout,
            default_deadline_days=default_deadline_days,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_negotiation(self, negotiation_id: str) -> Negotiation:
        """Return the current state of a negotiation.

        Raises:
            NegotiationNotFound: If the id is unknown.
        """
        return await load_negotiation(self._store, negotiation_id, timeout=self._timeout)

    async def list_offers(self, negotiation_id: str) -> list[Offer]:
        """Return a negotiation's offer history, oldest first."""
        await self.get_negotiation(negotiation_id)
        rows = await bounded(
            self._store.find("offers", {"negotiation_id": negotiation_id}),
            operation="store.find(offers)",
            timeout=self._timeout,
        )
        return [Offer.model_validate(row) for row in rows]

    async def retry_materialization(self, negotiation_id: str) -> str:
        """Re-run job materialization for a ``both_agreed`` negotiation."""
        return await self.materializer.materialize(negotiation_id)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def propose(
        self,
        service_id: str,
        requester_id: str,
        provider_id: str,
        initial_price: Decimal,
        description: str | None = None,
        deadline: datetime | None = None,
    ) -> Negotiation:
        """Open a negotiation with the provider's quoted price.

        Price bounds and the service name are snapshotted from the listing
        and stay fixed for the life of the negotiation.

        Raises:
            ServiceNotFound: If the service listing does not exist.
            InvalidCounterparty: If either party fails resolution, the two
                parties are the same, or the provider does not own the listing.
            PriceOutOfRange: If the price is outside the listing's range.
            InvalidDeadline: If the deadline is not in the future.
        """
        log = logger.bind(service_id=service_id, requester_id=requester_id)
        if requester_id == provider_id:
            raise InvalidCounterparty(requester_id, "cannot negotiate with itself")

        service = await load_service(self._store, service_id, timeout=self._timeout)
        if service.provider_id != provider_id:
            raise InvalidCounterparty(provider_id, f"does not offer service '{service_id}'")
        ensure_price_in_range(initial_price, service.min_price, service.max_price)
        ensure_future_deadline(deadline)
        await require_parties(
            self._directory, (requester_id, provider_id), timeout=self._timeout
        )

        negotiation = Negotiation(
            negotiation_id=new_id(),
            service_id=service.service_id,
            service_name=service.service_name,
            requester_id=requester_id,
            provider_id=provider_id,
            current_price=initial_price,
            min_price=service.min_price,
            max_price=service.max_price,
            last_offer_by=PartyRole.PROVIDER,
            offer_count=1,
            deadline=deadline,
            job_description=description,
        )
        row = await self._insert("negotiations", negotiation.model_dump(mode="json"))
        negotiation = Negotiation.model_validate(row)

        await self._record_offer(negotiation)

        NEGOTIATIONS_OPENED.inc()
        log.info(
            "Negotiation opened",
            negotiation_id=negotiation.negotiation_id,
            price=str(initial_price),
        )
        audit_safely(
            self._audit and self._audit.log_negotiation_opened,
            negotiation_id=negotiation.negotiation_id,
            service_id=service_id,
            requester_id=requester_id,
            provider_id=provider_id,
            price=initial_price,
        )
        self._dispatcher.publish([messages.price_proposal(negotiation)])
        return negotiation

    async def counter_offer(
        self,
        negotiation_id: str,
        party: Party,
        new_price: Decimal,
        message: str | None = None,
        *,
        expected_version: int | None = None,
    ) -> Negotiation:
        """Replace the current price with a new offer from *party*.

        Always reopens the negotiation: both agreement flags are cleared,
        status returns to ``pending`` and prior confirmations are deactivated.

        Raises:
            NegotiationNotFound: If the id is unknown.
            UnauthorizedParty: If *party* is not in the negotiation.
            InvalidTransitionError: If the negotiation is terminal.
            PriceOutOfRange: If *new_price* is outside the snapshotted bounds.
            ConcurrentModification: If the negotiation changed since it was read.
        """
        negotiation = await self._load_for(negotiation_id, party, expected_version)
        machine = NegotiationStateMachine(initial_state=negotiation.status)
        new_status = machine.trigger(NegotiationEvent.COUNTER_OFFER)
        ensure_price_in_range(new_price, negotiation.min_price, negotiation.max_price)

        updated = await self._write(
            negotiation,
            {
                "current_price": new_price,
                "last_offer_by": party.role,
                "offer_count": negotiation.offer_count + 1,
                "requester_agreed": False,
                "provider_agreed": False,
                "status": new_status,
                "final_agreed_price": None,
            },
        )
        await deactivate_confirmations(self._store, negotiation_id, timeout=self._timeout)
        if negotiation.status is NegotiationStatus.BOTH_AGREED:
            await self.materializer.cancel_unlinked_job(negotiation_id)

        offer = await self._record_offer(updated, message)

        logger.info(
            "Counter-offer recorded",
            negotiation_id=negotiation_id,
            party_id=party.party_id,
            price=str(new_price),
            offer_count=updated.offer_count,
        )
        audit_safely(
            self._audit and self._audit.log_offer,
            negotiation_id=negotiation_id,
            party_id=party.party_id,
            role=party.role.value,
            price=new_price,
            offer_count=updated.offer_count,
        )
        self._audit_transition(negotiation, updated, NegotiationEvent.COUNTER_OFFER, party)
        self._dispatcher.publish([messages.counter_offer(updated, offer)])
        return updated

    async def agree(
        self,
        negotiation_id: str,
        party: Party,
        *,
        expected_version: int | None = None,
    ) -> Negotiation:
        """Record *party*'s agreement to the current price.

        When the counterparty has already agreed the negotiation moves to
        ``both_agreed`` and the job is materialized synchronously.  If
        materialization fails the error propagates and the negotiation stays
        ``both_agreed``; calling ``agree`` (or ``retry_materialization``)
        again completes it without re-collecting agreement.
        A counterpart agreeing while this call is in flight is picked up by a
        re-read, so the call then returns the materialized negotiation.

        Raises:
            NegotiationNotFound: If the id is unknown.
            UnauthorizedParty: If *party* is not in the negotiation.
            InvalidTransitionError: If the negotiation is terminal.
            SelfAgreementNotAllowed: If *party* made the last offer and would
                be the first to agree to it.
            ConcurrentModification: If the negotiation changed since it was read.
        """
        negotiation = await self._load_for(negotiation_id, party, expected_version)

        if negotiation.status is NegotiationStatus.BOTH_AGREED:
            logger.info("Retrying materialization on agree", negotiation_id=negotiation_id)
            await self._ensure_confirmation(negotiation, party)
            return await self._materialize(negotiation_id)

        machine = NegotiationStateMachine(initial_state=negotiation.status)
        if machine.is_terminal:
            raise InvalidTransitionError(negotiation.status, NegotiationEvent.AGREE)

        if negotiation.has_agreed(party.role):
            logger.info(
                "Party already agreed, nothing to do",
                negotiation_id=negotiation_id,
                party_id=party.party_id,
            )
            return negotiation

        counterpart_agreed = negotiation.has_agreed(party.role.counterpart)
        if (
            not self._allow_self_agreement
            and negotiation.last_offer_by is party.role
            and not counterpart_agreed
        ):
            raise SelfAgreementNotAllowed(party.party_id)

        event = (
            NegotiationEvent.MUTUAL_AGREEMENT if counterpart_agreed else NegotiationEvent.AGREE
        )
        patch: dict[str, Any] = {
            f"{party.role.value}_agreed": True,
            "status": machine.trigger(event),
        }
        if counterpart_agreed:
            patch["final_agreed_price"] = negotiation.current_price

        # The confirmation must exist before the flag is visible, or a
        # counterpart agreeing in between would materialize without it
        await self._ensure_confirmation(negotiation, party)
        updated = await self._write(negotiation, patch)

        logger.info(
            "Agreement recorded",
            negotiation_id=negotiation_id,
            party_id=party.party_id,
            price=str(updated.current_price),
            status=updated.status.value,
        )
        audit_safely(
            self._audit and self._audit.log_agreement,
            negotiation_id=negotiation_id,
            party_id=party.party_id,
            role=party.role.value,
            price=updated.current_price,
            negotiation_state=updated.status.value,
        )
        self._audit_transition(negotiation, updated, event, party)

        if updated.both_agreed:
            return await self._materialize(negotiation_id)

        current = await self.get_negotiation(negotiation_id)
        if current.status is NegotiationStatus.COMPLETED:
            return current
        if current.status is NegotiationStatus.BOTH_AGREED:
            logger.info("Counterpart agreed concurrently", negotiation_id=negotiation_id)
            return await self._materialize(negotiation_id)

        self._dispatcher.publish([messages.agreement_pending(updated, party.role)])
        return updated

    async def decline(
        self,
        negotiation_id: str,
        party: Party,
        *,
        expected_version: int | None = None,
    ) -> Negotiation:
        """End the negotiation without a job.

        Raises:
            NegotiationNotFound: If the id is unknown.
            UnauthorizedParty: If *party* is not in the negotiation.
            InvalidTransitionError: If the negotiation is already terminal.
            ConcurrentModification: If the negotiation changed since it was read.
        """
        negotiation = await self._load_for(negotiation_id, party, expected_version)
        machine = NegotiationStateMachine(initial_state=negotiation.status)
        new_status = machine.trigger(NegotiationEvent.DECLINE)

        updated = await self._write(negotiation, {"status": new_status})
        await deactivate_confirmations(self._store, negotiation_id, timeout=self._timeout)
        if negotiation.status is NegotiationStatus.BOTH_AGREED:
            await self.materializer.cancel_unlinked_job(negotiation_id)

        logger.info("Negotiation declined", negotiation_id=negotiation_id, party_id=party.party_id)
        audit_safely(
            self._audit and self._audit.log_declined,
            negotiation_id=negotiation_id,
            party_id=party.party_id,
            role=party.role.value,
        )
        self._audit_transition(negotiation, updated, NegotiationEvent.DECLINE, party)
        self._dispatcher.publish([messages.negotiation_declined(updated, party.role)])
        return updated

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load_for(
        self, negotiation_id: str, party: Party, expected_version: int | None
    ) -> Negotiation:
        negotiation = await load_negotiation(self._store, negotiation_id, timeout=self._timeout)
        authorize(negotiation, party)
        if expected_version is not None and expected_version != negotiation.version:
            CONCURRENT_MODIFICATIONS.inc()
            raise ConcurrentModification("negotiations", negotiation_id, expected_version)
        await self._ensure_current_offer(negotiation)
        return negotiation

    async def _write(self, negotiation: Negotiation, patch: Mapping[str, Any]) -> Negotiation:
        """Apply *patch* only if the negotiation is still at the version we read."""
        try:
            row = await bounded(
                self._store.update(
                    "negotiations",
                    negotiation.negotiation_id,
                    {**patch, "updated_at": utcnow()},
                    expected_version=negotiation.version,
                ),
                operation="store.update(negotiations)",
                timeout=self._timeout,
            )
        except ConcurrentModification:
            CONCURRENT_MODIFICATIONS.inc()
            logger.warning(
                "Negotiation modified concurrently",
                negotiation_id=negotiation.negotiation_id,
                expected_version=negotiation.version,
            )
            raise
        return Negotiation.model_validate(row)

    async def _insert(self, table: str, record: Mapping[str, Any]) -> dict[str, Any]:
        return await bounded(
            self._store.insert(table, record),
            operation=f"store.insert({table})",
            timeout=self._timeout,
        )

    async def _record_offer(self, negotiation: Negotiation, message: str | None = None) -> Offer:
        """Insert the Offer row for the negotiation's current price.

        The row id is derived from ``offer_count``, so recording the same offer
        twice returns the row already stored.
        """
        role = negotiation.last_offer_by
        offer = Offer(
            offer_id=offer_id_for(negotiation.negotiation_id, negotiation.offer_count),
            negotiation_id=negotiation.negotiation_id,
            offered_by=role,
            party_id=negotiation.party_id_for(role),
            price=negotiation.current_price,
            message=message,
        )
        try:
            row = await self._insert("offers", offer.model_dump(mode="json"))
        except DuplicateRecord:
            row = await bounded(
                self._store.get("offers", offer.offer_id),
                operation="store.get(offers)",
                timeout=self._timeout,
            )
        return Offer.model_validate(row)

    async def _ensure_current_offer(self, negotiation: Negotiation) -> None:
        """Restore the Offer row of the current price if its insert never landed."""
        offer_id = offer_id_for(negotiation.negotiation_id, negotiation.offer_count)
        try:
            await bounded(
                self._store.get("offers", offer_id),
                operation="store.get(offers)",
                timeout=self._timeout,
            )
        except RecordNotFound:
            logger.warning(
                "Recording missing offer",
                negotiation_id=negotiation.negotiation_id,
                offer_count=negotiation.offer_count,
                price=str(negotiation.current_price),
            )
            await self._record_offer(negotiation)

    async def _ensure_confirmation(self, negotiation: Negotiation, party: Party) -> None:
        """Leave exactly one active confirmation for *party* at the current price."""
        existing = await active_confirmations(
            self._store,
            negotiation.negotiation_id,
            timeout=self._timeout,
            party_id=party.party_id,
        )
        if any(c.agreed_price == negotiation.current_price for c in existing):
            return
        if existing:
            await deactivate_confirmations(
                self._store,
                negotiation.negotiation_id,
                timeout=self._timeout,
                party_id=party.party_id,
            )
        confirmation = AgreementConfirmation(
            negotiation_id=negotiation.negotiation_id,
            party_id=party.party_id,
            role=party.role,
            agreed_price=negotiation.current_price,
        )
        await self._insert("agreement_confirmations", confirmation.model_dump(mode="json"))

    async def _materialize(self, negotiation_id: str) -> Negotiation:
        try:
            await self.materializer.materialize(negotiation_id)
        except NegotiationError as exc:
            logger.warning(
                "Job materialization failed; negotiation left both_agreed",
                negotiation_id=negotiation_id,
                error=exc.code,
            )
            audit_safely(
                self._audit and self._audit.log_error,
                negotiation_id=negotiation_id,
                error_code=exc.code,
                error_message=str(exc),
                context="materialization",
            )
            raise
        return await self.get_negotiation(negotiation_id)

    def _audit_transition(
        self,
        before: Negotiation,
        after: Negotiation,
        event: NegotiationEvent,
        party: Party,
    ) -> None:
        if before.status is after.status and event is not NegotiationEvent.COUNTER_OFFER:
            return
        audit_safely(
            self._audit and self._audit.log_state_transition,
            negotiation_id=after.negotiation_id,
            from_state=before.status.value,
            to_state=after.status.value,
            event=event.value,
            party_id=party.party_id,
        )
