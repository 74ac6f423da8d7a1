"""Tests for the notifications-table sink."""

from __future__ import annotations

import pytest

from flancer.directory.service import SQLiteDirectory
from flancer.domain.errors import NotificationRejected
from flancer.domain.types import NotificationType
from flancer.notifications.sink import SQLiteNotificationSink
from flancer.state.store import SQLiteRecordStore

SERVICE_METADATA = {"service_id": "svc-logo", "service_name": "Logo design"}


@pytest.fixture
def sink(store: SQLiteRecordStore, directory: SQLiteDirectory) -> SQLiteNotificationSink:
    return SQLiteNotificationSink(store, directory)


class TestSend:
    @pytest.mark.anyio()
    async def test_stores_unread_row(
        self, sink: SQLiteNotificationSink, store: SQLiteRecordStore
    ) -> None:
        await sink.send(
            "client-1",
            NotificationType.PRICE_PROPOSAL,
            "New price proposal",
            "A price of $500 was proposed.",
            SERVICE_METADATA,
        )

        rows = await store.find("notifications", {"user_id": "client-1"})
        assert len(rows) == 1
        assert rows[0]["type"] == "price_proposal"
        assert rows[0]["is_read"] == 0
        assert rows[0]["metadata"] == SERVICE_METADATA

    @pytest.mark.anyio()
    async def test_unknown_recipient_rejected(self, sink: SQLiteNotificationSink) -> None:
        with pytest.raises(NotificationRejected, match="does not exist"):
            await sink.send(
                "ghost", NotificationType.JOB_CREATED, "Job created", "m", {}
            )

    @pytest.mark.anyio()
    @pytest.mark.parametrize(
        "event_type", [NotificationType.PRICE_PROPOSAL, NotificationType.COUNTER_OFFER]
    )
    async def test_service_metadata_required(
        self, sink: SQLiteNotificationSink, event_type: NotificationType
    ) -> None:
        with pytest.raises(NotificationRejected, match="service_id or service_name"):
            await sink.send("client-1", event_type, "t", "m", {"service_id": "svc-logo"})

    @pytest.mark.anyio()
    async def test_other_events_need_no_service_metadata(
        self, sink: SQLiteNotificationSink, store: SQLiteRecordStore
    ) -> None:
        await sink.send("client-1", NotificationType.NEGOTIATION_DECLINED, "t", "m", {})
        assert len(await store.find("notifications")) == 1
