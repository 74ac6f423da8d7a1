"""Notification sinks: where queued notifications are finally delivered."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

import structlog

from flancer.directory.service import DirectoryService
from flancer.domain.errors import NotificationRejected
from flancer.domain.models import new_id
from flancer.domain.types import SERVICE_SCOPED_NOTIFICATIONS, NotificationType
from flancer.state.store import RecordStore

logger = structlog.get_logger()


class NotificationSink(Protocol):
    """Fire-and-forget delivery of a human-readable event to a party."""

    async def send(
        self,
        party_id: str,
        event_type: NotificationType,
        title: str,
        message: str,
        metadata: Mapping[str, str],
    ) -> None: ...


class SQLiteNotificationSink:
    """Write notifications into the ``notifications`` table as unread rows.

    Validates the recipient against the directory and requires service
    metadata on proposal and counter-offer events.
    """

    def __init__(self, store: RecordStore, directory: DirectoryService) -> None:
        self._store = store
        self._directory = directory

    async def send(
        self,
        party_id: str,
        event_type: NotificationType,
        title: str,
        message: str,
        metadata: Mapping[str, str],
    ) -> None:
        """Insert one notification row.

        Raises:
            NotificationRejected: If the recipient does not resolve or required
                metadata is missing.
        """
        if not await self._directory.exists(party_id):
            raise NotificationRejected(f"User with ID {party_id} does not exist")

        if event_type in SERVICE_SCOPED_NOTIFICATIONS and (
            not metadata.get("service_id") or not metadata.get("service_name")
        ):
            raise NotificationRejected(
                "Missing required metadata: service_id or service_name"
            )

        await self._store.insert(
            "notifications",
            {
                "notification_id": new_id(),
                "user_id": party_id,
                "type": event_type.value,
                "title": title,
                "message": message,
                "metadata": dict(metadata),
                "is_read": False,
            },
        )
        logger.debug("notification_stored", party_id=party_id, event_type=event_type.value)
