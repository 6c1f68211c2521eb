"""Notifications schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from app.core.enums import EmailTypeEnum, NotificationStatusEnum


class NotificationRead(BaseModel):
    """Notification response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    channel: str
    email_type: EmailTypeEnum
    recipient: str
    title: str
    status: NotificationStatusEnum
    sent_at: datetime | None
    created_at: datetime
