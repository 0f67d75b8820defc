from datetime import datetime
from typing import Any

from pydantic import BaseModel

from soloflow.schemas.common import IDModel, Timestamped


class NotificationRead(IDModel, Timestamped):
    event_type: str
    read_at: datetime | None = None
    period_end: datetime | None = None
    payload: dict[str, Any] | None = None


class NotificationList(BaseModel):
    items: list[NotificationRead]
    unread_count: int


class NotificationMarkAllResponse(BaseModel):
    updated: int
