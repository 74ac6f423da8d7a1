"""Read side of the notifications table: one party's inbox.

Parties only ever see and change their own rows; a notification addressed to
someone else is reported as not found.
"""

from __future__ import annotations

import structlog

from flancer.domain.errors import NotificationNotFound, RecordNotFound
from flancer.notifications.models import Notification
from flancer.resilience.timeouts import bounded
from flancer.state.store import RecordStore

logger = structlog.get_logger()


class NotificationInbox:
    """List, mark read and delete the notifications delivered to a party.

    Args:
        store: The record store the notification sink writes to.
        call_timeout: Per store call timeout in seconds.
    """

    def __init__(self, store: RecordStore, *, call_timeout: float = 5.0) -> None:
        self._store = store
        self._timeout = call_timeout

    async def list_for(self, party_id: str, *, unread_only: bool = False) -> list[Notification]:
        """Return *party_id*'s notifications, newest first."""
        filters: dict[str, object] = {"user_id": party_id}
        if unread_only:
            filters["is_read"] = False
        rows = await bounded(
            self._store.find("notifications", filters),
            operation="store.find(notifications)",
            timeout=self._timeout,
        )
        return [Notification.model_validate(row) for row in reversed(rows)]

    async def mark_read(self, notification_id: str, party_id: str) -> Notification:
        """Mark one notification read.

        Raises:
            NotificationNotFound: If it is missing or addressed to another party.
        """
        await self._owned(notification_id, party_id)
        row = await bounded(
            self._store.update("notifications", notification_id, {"is_read": True}),
            operation="store.update(notifications)",
            timeout=self._timeout,
        )
        return Notification.model_validate(row)

    async def mark_all_read(self, party_id: str) -> int:
        """Mark every unread notification of *party_id* read and return how many."""
        unread = await self.list_for(party_id, unread_only=True)
        for notification in unread:
            await bounded(
                self._store.update(
                    "notifications", notification.notification_id, {"is_read": True}
                ),
                operation="store.update(notifications)",
                timeout=self._timeout,
            )
        logger.info("Notifications marked read", party_id=party_id, count=len(unread))
        return len(unread)

    async def delete(self, notification_id: str, party_id: str) -> None:
        """Remove one notification from *party_id*'s inbox.

        Raises:
            NotificationNotFound: If it is missing or addressed to another party.
        """
        await self._owned(notification_id, party_id)
        await bounded(
            self._store.delete("notifications", notification_id),
            operation="store.delete(notifications)",
            timeout=self._timeout,
        )
        logger.info("Notification deleted", party_id=party_id, notification_id=notification_id)

    async def _owned(self, notification_id: str, party_id: str) -> Notification:
        try:
            row = await bounded(
                self._store.get("notifications", notification_id),
                operation="store.get(notifications)",
                timeout=self._timeout,
            )
        except RecordNotFound as exc:
            raise NotificationNotFound(notification_id) from exc
        notification = Notification.model_validate(row)
        if notification.user_id != party_id:
            raise NotificationNotFound(notification_id)
        return notification
