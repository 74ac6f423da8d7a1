"""Outbound notification queue.

The engine publishes the notifications a transition produced only after the
transition is persisted.  Delivery runs on background tasks with a bounded
retry policy, so a slow or failing sink can never be mistaken for a failed
transition.  Final failures are logged and counted, never raised.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import Any

import structlog

from flancer.domain.errors import NotificationRejected
from flancer.notifications.models import OutboundNotification
from flancer.notifications.sink import NotificationSink
from flancer.observability.metrics import NOTIFICATION_FAILURES
from flancer.resilience.retry import resilient_call

logger = structlog.get_logger()


class NotificationDispatcher:
    """Deliver queued notifications to a sink in the background.

    Args:
        sink: Where notifications are delivered.
        attempts: Delivery attempts per notification, including the first.
        initial_wait: First retry backoff in seconds.
        max_wait: Upper bound on any single backoff.
    """

    def __init__(
        self,
        sink: NotificationSink,
        *,
        attempts: int = 3,
        initial_wait: float = 0.5,
        max_wait: float = 10.0,
    ) -> None:
        self._sink = sink
        # Track background tasks to prevent garbage collection
        self._tasks: set[asyncio.Task[Any]] = set()

        @resilient_call(
            "notification_sink",
            attempts=attempts,
            initial_wait=initial_wait,
            max_wait=max_wait,
            jitter=initial_wait,
            give_up_on=(NotificationRejected,),
        )
        async def _deliver(notification: OutboundNotification) -> None:
            await sink.send(
                notification.party_id,
                notification.event_type,
                notification.title,
                notification.message,
                notification.metadata,
            )

        self._deliver = _deliver

    @property
    def pending(self) -> int:
        """Number of deliveries still in flight."""
        return len(self._tasks)

    def publish(self, notifications: Iterable[OutboundNotification]) -> None:
        """Queue *notifications* for background delivery.

        Must be called from a running event loop.
        """
        for notification in notifications:
            task = asyncio.ensure_future(self._deliver_safely(notification))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait until every queued delivery has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def _deliver_safely(self, notification: OutboundNotification) -> None:
        try:
            await self._deliver(notification)
        except Exception:
            NOTIFICATION_FAILURES.inc()
            logger.exception(
                "notification_delivery_failed",
                party_id=notification.party_id,
                event_type=notification.event_type.value,
                negotiation_id=notification.metadata.get("negotiation_id"),
            )
        else:
            logger.debug(
                "notification_delivered",
                party_id=notification.party_id,
                event_type=notification.event_type.value,
            )
