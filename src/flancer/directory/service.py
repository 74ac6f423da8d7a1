"""Directory service: decides whether a party id denotes an active account."""

from __future__ import annotations

from typing import Protocol

import structlog

from flancer.domain.errors import RecordNotFound
from flancer.state.store import RecordStore

logger = structlog.get_logger()


class DirectoryService(Protocol):
    """Resolves party identifiers to known, active accounts."""

    async def exists(self, party_id: str) -> bool: ...


class SQLiteDirectory:
    """Directory backed by the ``accounts`` table of the record store.

    A party resolves when its account row exists and is active.  Store
    failures propagate so they are never mistaken for a missing party.
    """

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def exists(self, party_id: str) -> bool:
        if not party_id or not party_id.strip():
            return False
        try:
            account = await self._store.get("accounts", party_id)
        except RecordNotFound:
            logger.debug("party_not_found", party_id=party_id)
            return False
        return bool(account.get("active"))

    async def register(self, party_id: str, display_name: str = "") -> None:
        """Create an active account row for *party_id*."""
        await self._store.insert(
            "accounts",
            {"account_id": party_id, "display_name": display_name, "active": True},
        )

    async def deactivate(self, party_id: str) -> None:
        """Mark *party_id* inactive so it no longer resolves."""
        await self._store.update("accounts", party_id, {"active": False})
