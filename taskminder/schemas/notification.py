from datetime import datetime

from pydantic import BaseModel, EmailStr


class NotificationLogResponse(BaseModel):
    id: int
    task_id: int
    user_id: int
    channel: str
    status: str
    error_message: str | None = None
    target: str | None = None
    device_type: str | None = None
    created_at: datetime


class NotificationStats(BaseModel):
    sent: int = 0
    failed: int = 0


class ScanResponse(BaseModel):
    triggered: bool
    window_start: datetime | None = None
    window_end: datetime | None = None
    found: int = 0
    delivered: int = 0
    skipped: int = 0
    failed: int = 0


class EmailCheckRequest(BaseModel):
    to: EmailStr
