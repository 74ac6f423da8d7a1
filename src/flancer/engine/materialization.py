"""Job materialization: turn a mutually agreed negotiation into a job.

Each step is independently retriable and no cross-step transaction is
assumed.  Idempotence comes from two guards: a ``completed`` negotiation
returns its linked job, and the store's unique ``jobs.negotiation_id``
constraint turns a second insert into a lookup of the existing job.  A job
left behind by an interrupted attempt is cancelled when the negotiation
reopens or ends, and is re-priced to the agreed terms before it is reused.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import structlog

from flancer.audit.logger import AuditLogger, audit_safely
from flancer.directory.service import DirectoryService
from flancer.domain.errors import (
    ConcurrentModification,
    DuplicateRecord,
    IncompleteNegotiation,
    InvalidTransitionError,
    PartyNoLongerExists,
)
from flancer.domain.models import Job, Negotiation, utcnow
from flancer.domain.types import JobStatus, NegotiationStatus, PartyRole
from flancer.engine.validation import (
    active_confirmations,
    load_negotiation,
    load_service,
    require_parties,
)
from flancer.notifications import messages
from flancer.notifications.dispatcher import NotificationDispatcher
from flancer.observability.metrics import CONCURRENT_MODIFICATIONS, JOBS_CREATED
from flancer.resilience.timeouts import bounded
from flancer.state.store import RecordStore
from flancer.state_machine import NegotiationEvent, NegotiationStateMachine

logger = structlog.get_logger()

DEFAULT_JOB_DESCRIPTION = "Job created from price negotiation"


class JobMaterializer:
    """Create exactly one job for a negotiation in ``both_agreed``.

    Args:
        store: The record store.
        directory: Used to re-validate both parties.
        dispatcher: Outbound notification queue.
        audit_logger: Optional audit trail.
        call_timeout: Per collaborator call timeout in seconds.
        default_deadline_days: Deadline offset used when the negotiation has none.
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
    ) -> None:
        self._store = store
        self._directory = directory
        self._dispatcher = dispatcher
        self._audit = audit_logger
        self._timeout = call_timeout
        self._default_deadline = timedelta(days=default_deadline_days)

    async def materialize(self, negotiation_id: str) -> str:
        """Materialize the job for *negotiation_id* and return its id.

        Re-invoking this for a ``completed`` negotiation returns the existing
        job id without creating another job.

        Raises:
            NegotiationNotFound: If the id is unknown.
            InvalidTransitionError: If the negotiation is not ``both_agreed``.
            IncompleteNegotiation: If required data or confirmations are missing.
            PartyNoLongerExists: If either party stopped resolving.
            ServiceNotFound: If the service listing was removed.
            ConcurrentModification: If the negotiation changed while linking.
            TransientError: If a collaborator timed out.
        """
        # Re-fetch so a stale caller view cannot drive the decision
        negotiation = await load_negotiation(self._store, negotiation_id, timeout=self._timeout)
        log = logger.bind(negotiation_id=negotiation_id, version=negotiation.version)

        if negotiation.status is NegotiationStatus.COMPLETED:
            if not negotiation.job_id:
                raise IncompleteNegotiation(
                    f"Negotiation '{negotiation_id}' is completed without a linked job"
                )
            log.info("Negotiation already materialized", job_id=negotiation.job_id)
            return negotiation.job_id

        machine = NegotiationStateMachine(initial_state=negotiation.status)
        if not machine.can_trigger(NegotiationEvent.MATERIALIZE):
            raise InvalidTransitionError(negotiation.status, NegotiationEvent.MATERIALIZE)

        self._check_required_fields(negotiation)
        await require_parties(
            self._directory,
            (negotiation.requester_id, negotiation.provider_id),
            timeout=self._timeout,
            error=PartyNoLongerExists,
        )
        await load_service(self._store, negotiation.service_id, timeout=self._timeout)

        final_price = negotiation.final_agreed_price or negotiation.current_price
        if final_price <= 0:
            raise IncompleteNegotiation(f"Invalid agreed price: {final_price}")
        await self._check_confirmations(negotiation, final_price)

        job = await self._insert_job(negotiation, final_price)

        try:
            linked = await bounded(
                self._store.update(
                    "negotiations",
                    negotiation_id,
                    {
                        "job_id": job.job_id,
                        "status": machine.trigger(NegotiationEvent.MATERIALIZE),
                        "final_agreed_price": final_price,
                        "updated_at": utcnow(),
                    },
                    expected_version=negotiation.version,
                ),
                operation="store.update(negotiations)",
                timeout=self._timeout,
            )
        except ConcurrentModification:
            CONCURRENT_MODIFICATIONS.inc()
            current = await load_negotiation(self._store, negotiation_id, timeout=self._timeout)
            if current.status is NegotiationStatus.COMPLETED and current.job_id:
                log.info("Job linked by a concurrent request", job_id=current.job_id)
                return current.job_id
            raise

        completed = Negotiation.model_validate(linked)
        JOBS_CREATED.inc()
        log.info("Job materialized", job_id=job.job_id, payment=str(job.payment))
        audit_safely(
            self._audit and self._audit.log_state_transition,
            negotiation_id=negotiation_id,
            from_state=NegotiationStatus.BOTH_AGREED.value,
            to_state=NegotiationStatus.COMPLETED.value,
            event=NegotiationEvent.MATERIALIZE.value,
        )
        audit_safely(
            self._audit and self._audit.log_job_materialized,
            negotiation_id=negotiation_id,
            job_id=job.job_id,
            payment=job.payment,
        )
        self._dispatcher.publish(messages.job_created(completed, job))
        return job.job_id

    @staticmethod
    def _check_required_fields(negotiation: Negotiation) -> None:
        for field in ("service_id", "requester_id", "provider_id"):
            if not getattr(negotiation, field):
                raise IncompleteNegotiation(f"Missing {field} in negotiation")

    async def _check_confirmations(self, negotiation: Negotiation, final_price: Decimal) -> None:
        confirmations = await active_confirmations(
            self._store, negotiation.negotiation_id, timeout=self._timeout
        )
        confirmed = {
            c.role
            for c in confirmations
            if c.agreed_price == final_price
            and c.party_id == negotiation.party_id_for(c.role)
        }
        missing = set(PartyRole) - confirmed
        if missing:
            raise IncompleteNegotiation(
                "Missing active agreement confirmation for "
                + ", ".join(sorted(role.value for role in missing))
            )

    async def _insert_job(self, negotiation: Negotiation, final_price: Decimal) -> Job:
        job = Job(
            negotiation_id=negotiation.negotiation_id,
            service_id=negotiation.service_id,
            requester_id=negotiation.requester_id,
            provider_id=negotiation.provider_id,
            payment=final_price,
            deadline=negotiation.deadline or utcnow() + self._default_deadline,
            description=negotiation.job_description or DEFAULT_JOB_DESCRIPTION,
        )
        try:
            row = await bounded(
                self._store.insert("jobs", job.model_dump(mode="json")),
                operation="store.insert(jobs)",
                timeout=self._timeout,
            )
        except DuplicateRecord:
            # A previous attempt created the job but did not link it
            existing = await self._unlinked_job(negotiation.negotiation_id)
            if existing is None:
                raise
            return await self._refresh_job(existing, job)
        return Job.model_validate(row)

    async def _unlinked_job(self, negotiation_id: str) -> Job | None:
        rows = await bounded(
            self._store.find("jobs", {"negotiation_id": negotiation_id}),
            operation="store.find(jobs)",
            timeout=self._timeout,
        )
        return Job.model_validate(rows[0]) if rows else None

    async def _refresh_job(self, existing: Job, wanted: Job) -> Job:
        """Bring a job left by an earlier attempt in line with the agreed terms."""
        log = logger.bind(negotiation_id=existing.negotiation_id, job_id=existing.job_id)
        if existing.status is JobStatus.IN_PROGRESS and existing.payment == wanted.payment:
            log.info("Reusing existing job for negotiation")
            return existing

        log.info(
            "Re-pricing stale job for negotiation",
            old_payment=str(existing.payment),
            payment=str(wanted.payment),
            old_status=existing.status.value,
        )
        row = await bounded(
            self._store.update(
                "jobs",
                existing.job_id,
                {
                    "status": JobStatus.IN_PROGRESS,
                    "payment": wanted.payment,
                    "deadline": wanted.deadline,
                    "description": wanted.description,
                },
            ),
            operation="store.update(jobs)",
            timeout=self._timeout,
        )
        return Job.model_validate(row)

    async def cancel_unlinked_job(self, negotiation_id: str) -> Job | None:
        """Cancel a job an interrupted materialization left behind.

        Called when the negotiation reopens or ends, so the job can no longer
        carry the price it was created with.  Returns the cancelled job, if any.
        """
        existing = await self._unlinked_job(negotiation_id)
        if existing is None or existing.status is JobStatus.CANCELLED:
            return None
        row = await bounded(
            self._store.update("jobs", existing.job_id, {"status": JobStatus.CANCELLED}),
            operation="store.update(jobs)",
            timeout=self._timeout,
        )
        logger.info(
            "Cancelled unlinked job",
            negotiation_id=negotiation_id,
            job_id=existing.job_id,
            payment=str(existing.payment),
        )
        return Job.model_validate(row)
