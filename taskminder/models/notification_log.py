"""Notification audit trail: one row per channel attempt, never updated."""
from datetime import datetime

from sqlmodel import Field, SQLModel

from .clock import utcnow

CHANNEL_PUSH = "push"
CHANNEL_EMAIL = "email"

STATUS_SENT = "sent"
STATUS_FAILED = "failed"


class NotificationLog(SQLModel, table=True):
    __tablename__ = "notification_logs"
    id: int | None = Field(default=None, primary_key=True)
    task_id: int = Field(index=True)
    user_id: int = Field(index=True)
    channel: str = Field(index=True)  # push | email
    status: str = Field(index=True)  # sent | failed
    error_message: str | None = None
    target: str | None = None  # push endpoint or e-mail address
    device_type: str | None = None
    created_at: datetime = Field(default_factory=utcnow, index=True)
