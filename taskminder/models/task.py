"""Tasks: due date, completion and the reminder state used by the scanner.

Reminder lifecycle: armed (reminder_sent false, due_at set) -> picked up by a
scan -> retired (reminder_sent true). Moving due_at to a new non-null value
re-arms a retired task.
"""
from datetime import datetime
from enum import Enum

from sqlalchemy import event, inspect
from sqlmodel import Field, SQLModel

from .clock import utcnow


class TaskPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Task(SQLModel, table=True):
    __tablename__ = "tasks"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    title: str
    priority: TaskPriority = TaskPriority.MEDIUM
    due_at: datetime | None = Field(default=None, index=True)
    completed: bool = False
    notifications_enabled: bool = Field(default=False, index=True)
    reminder_sent: bool | None = Field(default=False, index=True)
    created_from_device: str = "web"
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime | None = Field(default_factory=utcnow)


@event.listens_for(Task, "before_update")
def _rearm_on_reschedule(mapper, connection, target: Task) -> None:
    history = inspect(target).attrs.due_at.history
    if history.has_changes() and target.due_at is not None:
        target.reminder_sent = False
    target.updated_at = utcnow()
