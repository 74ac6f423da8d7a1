"""Tests for a party's notification inbox."""

from __future__ import annotations

import pytest

from flancer.directory.service import SQLiteDirectory
from flancer.domain.errors import NotificationNotFound
from flancer.domain.types import NotificationType
from flancer.notifications.inbox import NotificationInbox
from flancer.notifications.sink import SQLiteNotificationSink
from flancer.state.store import SQLiteRecordStore


@pytest.fixture
def inbox(store: SQLiteRecordStore) -> NotificationInbox:
    return NotificationInbox(store)


@pytest.fixture
async def delivered(store: SQLiteRecordStore, directory: SQLiteDirectory) -> list[str]:
    """Three notifications for client-1 and one for freelancer-1, oldest first."""
    sink = SQLiteNotificationSink(store, directory)
    for title in ("first", "second", "third"):
        await sink.send("client-1", NotificationType.JOB_CREATED, title, "m", {})
    await sink.send("freelancer-1", NotificationType.JOB_CREATED, "other", "m", {})
    rows = await store.find("notifications", {"user_id": "client-1"})
    return [row["notification_id"] for row in rows]


class TestListFor:
    @pytest.mark.anyio()
    async def test_newest_first_and_scoped_to_party(
        self, inbox: NotificationInbox, delivered: list[str]
    ) -> None:
        notifications = await inbox.list_for("client-1")

        assert [n.title for n in notifications] == ["third", "second", "first"]
        assert all(n.user_id == "client-1" for n in notifications)
        assert notifications[0].type is NotificationType.JOB_CREATED
        assert notifications[0].is_read is False

    @pytest.mark.anyio()
    async def test_unread_only(self, inbox: NotificationInbox, delivered: list[str]) -> None:
        await inbox.mark_read(delivered[0], "client-1")

        unread = await inbox.list_for("client-1", unread_only=True)

        assert [n.title for n in unread] == ["third", "second"]

    @pytest.mark.anyio()
    async def test_empty_inbox(self, inbox: NotificationInbox) -> None:
        assert await inbox.list_for("client-1") == []


class TestMarkRead:
    @pytest.mark.anyio()
    async def test_marks_one(self, inbox: NotificationInbox, delivered: list[str]) -> None:
        marked = await inbox.mark_read(delivered[1], "client-1")

        assert marked.is_read is True
        assert [n.is_read for n in await inbox.list_for("client-1")] == [False, True, False]

    @pytest.mark.anyio()
    async def test_mark_all_counts_only_unread(
        self, inbox: NotificationInbox, delivered: list[str]
    ) -> None:
        await inbox.mark_read(delivered[0], "client-1")

        assert await inbox.mark_all_read("client-1") == 2
        assert await inbox.mark_all_read("client-1") == 0
        assert await inbox.list_for("client-1", unread_only=True) == []
        assert len(await inbox.list_for("freelancer-1", unread_only=True)) == 1

    @pytest.mark.anyio()
    async def test_foreign_notification_not_found(
        self, inbox: NotificationInbox, delivered: list[str]
    ) -> None:
        with pytest.raises(NotificationNotFound):
            await inbox.mark_read(delivered[0], "freelancer-1")

    @pytest.mark.anyio()
    async def test_unknown_notification(self, inbox: NotificationInbox) -> None:
        with pytest.raises(NotificationNotFound, match="ghost"):
            await inbox.mark_read("ghost", "client-1")


class TestDelete:
    @pytest.mark.anyio()
    async def test_removes_from_inbox(
        self, inbox: NotificationInbox, delivered: list[str]
    ) -> None:
        await inbox.delete(delivered[2], "client-1")

        assert [n.title for n in await inbox.list_for("client-1")] == ["second", "first"]
        with pytest.raises(NotificationNotFound):
            await inbox.delete(delivered[2], "client-1")

    @pytest.mark.anyio()
    async def test_foreign_notification_kept(
        self, inbox: NotificationInbox, delivered: list[str]
    ) -> None:
        with pytest.raises(NotificationNotFound):
            await inbox.delete(delivered[0], "freelancer-1")

        assert len(await inbox.list_for("client-1")) == 3
