"""Web Push subscriptions (one row per browser/device registration)."""
from datetime import datetime

from sqlmodel import Field, SQLModel

from .clock import utcnow


class PushSubscription(SQLModel, table=True):
    __tablename__ = "push_subscriptions"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    endpoint: str = Field(unique=True, index=True)  # push service URL; one row per device
    p256dh: str = ""  # client public key (base64url)
    auth: str = ""    # auth secret (base64url)
    device_type: str | None = None  # web | mobile | tablet
    browser: str | None = None
    os: str | None = None
    device_name: str | None = None
    last_used_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime | None = Field(default_factory=utcnow)

    def subscription_info(self) -> dict:
        """Shape expected by pywebpush.webpush()."""
        return {"endpoint": self.endpoint, "keys": {"p256dh": self.p256dh, "auth": self.auth}}
