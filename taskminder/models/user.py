from datetime import datetime

from sqlmodel import Field, SQLModel

from .clock import utcnow


class User(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    email: str | None = Field(default=None, unique=True, index=True)
    full_name: str = ""
    created_at: datetime | None = Field(default_factory=utcnow)
