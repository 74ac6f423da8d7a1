"""Tests for optimistic concurrency and bounded collaborator calls."""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any

import pytest

from flancer.directory.service import SQLiteDirectory
from flancer.domain.errors import ConcurrentModification, PartyNoLongerExists, TransientError
from flancer.domain.models import Negotiation, Party
from flancer.domain.types import NegotiationStatus
from flancer.engine.negotiation import NegotiationEngine
from flancer.notifications.dispatcher import NotificationDispatcher
from flancer.state.store import SQLiteRecordStore


class BarrierStore:
    """Store wrapper that holds the first *parties* negotiation reads until all have read.

    Forces concurrent actions to act on the same version of a negotiation.
    Later reads pass straight through.
    """

    def __init__(self, inner: SQLiteRecordStore, parties: int) -> None:
        self._inner = inner
        self._barrier = asyncio.Barrier(parties)
        self._held = parties

    async def get(self, table: str, key: str) -> dict[str, Any]:
        row = await self._inner.get(table, key)
        if table == "negotiations" and self._held:
            self._held -= 1
            await self._barrier.wait()
        return row

    def __getattr__(self, name: str) -> Any:
        return getattr(self._inner, name)


class PausingStore:
    """Store wrapper that pauses right after the requester's agreement flag is written."""

    def __init__(self, inner: SQLiteRecordStore) -> None:
        self._inner = inner
        self.flag_written = asyncio.Event()
        self.resume = asyncio.Event()

    async def update(
        self,
        table: str,
        key: str,
        patch: dict[str, Any],
        expected_version: int | None = None,
    ) -> dict[str, Any]:
        row = await self._inner.update(table, key, patch, expected_version)
        if table == "negotiations" and patch.get("requester_agreed") is True:
            self.flag_written.set()
            await self.resume.wait()
        return row

    def __getattr__(self, name: str) -> Any:
        return getattr(self._inner, name)


class SlowDirectory:
    """Directory whose lookups never answer in time."""

    async def exists(self, party_id: str) -> bool:
        await asyncio.sleep(5)
        return True


class SlowStore:
    """Store wrapper whose reads of *table* hang."""

    def __init__(self, inner: SQLiteRecordStore, table: str) -> None:
        self._inner = inner
        self._table = table

    async def get(self, table: str, key: str) -> dict[str, Any]:
        if table == self._table:
            await asyncio.sleep(5)
        return await self._inner.get(table, key)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._inner, name)


@pytest.fixture
async def negotiation(engine: NegotiationEngine) -> Negotiation:
    return await engine.propose("svc-logo", "client-1", "freelancer-1", Decimal("500"))


class TestConcurrentCounterOffers:
    @pytest.mark.anyio()
    async def test_exactly_one_wins(
        self,
        store: SQLiteRecordStore,
        directory: SQLiteDirectory,
        dispatcher: NotificationDispatcher,
        negotiation: Negotiation,
        requester: Party,
        provider: Party,
    ) -> None:
        racing = NegotiationEngine(BarrierStore(store, 2), directory, dispatcher)
        neg_id = negotiation.negotiation_id

        results = await asyncio.gather(
            racing.counter_offer(neg_id, requester, Decimal("650")),
            racing.counter_offer(neg_id, provider, Decimal("800")),
            return_exceptions=True,
        )

        winners = [r for r in results if isinstance(r, Negotiation)]
        losers = [r for r in results if isinstance(r, ConcurrentModification)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert losers[0].expected_version == negotiation.version

        current = Negotiation.model_validate(await store.get("negotiations", neg_id))
        assert current.offer_count == 2
        assert current.current_price == winners[0].current_price
        assert len(await store.find("offers", {"negotiation_id": neg_id})) == 2

    @pytest.mark.anyio()
    async def test_loser_succeeds_after_reread(
        self,
        store: SQLiteRecordStore,
        directory: SQLiteDirectory,
        dispatcher: NotificationDispatcher,
        engine: NegotiationEngine,
        negotiation: Negotiation,
        requester: Party,
        provider: Party,
    ) -> None:
        racing = NegotiationEngine(BarrierStore(store, 2), directory, dispatcher)
        neg_id = negotiation.negotiation_id
        await asyncio.gather(
            racing.counter_offer(neg_id, requester, Decimal("650")),
            racing.counter_offer(neg_id, provider, Decimal("800")),
            return_exceptions=True,
        )

        fresh = await engine.get_negotiation(neg_id)
        updated = await engine.counter_offer(
            neg_id, requester, Decimal("700"), expected_version=fresh.version
        )

        assert updated.offer_count == 3
        assert updated.current_price == Decimal("700")


class TestConcurrentAgreement:
    @pytest.mark.anyio()
    async def test_simultaneous_agrees_produce_one_job(
        self,
        store: SQLiteRecordStore,
        directory: SQLiteDirectory,
        dispatcher: NotificationDispatcher,
        requester: Party,
        provider: Party,
    ) -> None:
        plain = NegotiationEngine(store, directory, dispatcher, allow_self_agreement=True)
        racing = NegotiationEngine(
            BarrierStore(store, 2), directory, dispatcher, allow_self_agreement=True
        )
        neg = await plain.propose("svc-logo", "client-1", "freelancer-1", Decimal("500"))

        results = await asyncio.gather(
            racing.agree(neg.negotiation_id, requester),
            racing.agree(neg.negotiation_id, provider),
            return_exceptions=True,
        )
        assert sum(isinstance(r, ConcurrentModification) for r in results) == 1
        loser = requester if isinstance(results[0], ConcurrentModification) else provider

        done = await plain.agree(neg.negotiation_id, loser)

        assert done.status is NegotiationStatus.COMPLETED
        assert len(await store.find("jobs")) == 1

    @pytest.mark.anyio()
    async def test_counterpart_agreeing_mid_write_completes(
        self,
        store: SQLiteRecordStore,
        directory: SQLiteDirectory,
        dispatcher: NotificationDispatcher,
        engine: NegotiationEngine,
        negotiation: Negotiation,
        requester: Party,
        provider: Party,
    ) -> None:
        pausing = PausingStore(store)
        slow = NegotiationEngine(pausing, directory, dispatcher)
        neg_id = negotiation.negotiation_id

        first = asyncio.create_task(slow.agree(neg_id, requester))
        await asyncio.wait_for(pausing.flag_written.wait(), timeout=2)

        second = await engine.agree(neg_id, provider)
        pausing.resume.set()
        first_result = await asyncio.wait_for(first, timeout=2)

        assert second.status is NegotiationStatus.COMPLETED
        assert first_result.status is NegotiationStatus.COMPLETED
        assert first_result.job_id == second.job_id
        assert len(await store.find("jobs")) == 1

    @pytest.mark.anyio()
    async def test_agree_finishes_materialization_the_counterpart_could_not(
        self,
        store: SQLiteRecordStore,
        directory: SQLiteDirectory,
        dispatcher: NotificationDispatcher,
        engine: NegotiationEngine,
        negotiation: Negotiation,
        requester: Party,
        provider: Party,
    ) -> None:
        pausing = PausingStore(store)
        slow = NegotiationEngine(pausing, directory, dispatcher)
        neg_id = negotiation.negotiation_id
        first = asyncio.create_task(slow.agree(neg_id, requester))
        await asyncio.wait_for(pausing.flag_written.wait(), timeout=2)

        await directory.deactivate("freelancer-1")
        with pytest.raises(PartyNoLongerExists):
            await engine.agree(neg_id, provider)
        await store.update("accounts", "freelancer-1", {"active": True})

        pausing.resume.set()
        result = await asyncio.wait_for(first, timeout=2)

        assert result.status is NegotiationStatus.COMPLETED
        assert result.job_id is not None
        assert len(await store.find("jobs")) == 1


class TestBoundedCalls:
    @pytest.mark.anyio()
    async def test_directory_timeout_is_transient(
        self,
        store: SQLiteRecordStore,
        dispatcher: NotificationDispatcher,
    ) -> None:
        engine = NegotiationEngine(store, SlowDirectory(), dispatcher, call_timeout=0.05)

        with pytest.raises(TransientError, match="timed out"):
            await engine.propose("svc-logo", "client-1", "freelancer-1", Decimal("500"))

        assert await store.find("negotiations") == []

    @pytest.mark.anyio()
    async def test_store_timeout_is_transient(
        self,
        store: SQLiteRecordStore,
        directory: SQLiteDirectory,
        dispatcher: NotificationDispatcher,
        negotiation: Negotiation,
        requester: Party,
    ) -> None:
        engine = NegotiationEngine(
            SlowStore(store, "negotiations"), directory, dispatcher, call_timeout=0.05
        )

        with pytest.raises(TransientError):
            await engine.counter_offer(negotiation.negotiation_id, requester, Decimal("650"))

        current = Negotiation.model_validate(
            await store.get("negotiations", negotiation.negotiation_id)
        )
        assert current == negotiation
