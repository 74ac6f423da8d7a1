"""Notification models: queued outbound events and stored inbox rows."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from flancer.domain.types import NotificationType


class OutboundNotification(BaseModel):
    """A human-readable event queued for delivery to one party."""

    model_config = ConfigDict(frozen=True)

    party_id: str
    event_type: NotificationType
    title: str
    message: str
    metadata: dict[str, str] = Field(default_factory=dict)


class Notification(BaseModel):
    """A delivered notification as it sits in a party's inbox."""

    notification_id: str
    user_id: str
    type: NotificationType
    title: str
    message: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    is_read: bool = False
    created_at: datetime
