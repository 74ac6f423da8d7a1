"""Notification sinks, message builders, the outbound queue, and the inbox."""

from flancer.notifications.dispatcher import NotificationDispatcher
from flancer.notifications.inbox import NotificationInbox
from flancer.notifications.models import Notification, OutboundNotification
from flancer.notifications.sink import NotificationSink, SQLiteNotificationSink

__all__ = [
    "Notification",
    "NotificationDispatcher",
    "NotificationInbox",
    "NotificationSink",
    "OutboundNotification",
    "SQLiteNotificationSink",
]
