"""SQLModel adapters for the stores the notification pipeline reads and mutates.

Each call opens its own short-lived Session, so the adapters are safe to share
between the scheduler thread and the send worker pool.
"""
import logging
from datetime import datetime

from sqlalchemy import or_, update
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from taskminder.models import PushSubscription, Task, User
from taskminder.models.clock import utcnow

log = logging.getLogger("taskminder.store")


class IdentityNotFoundError(LookupError):
    """The task owner has no resolvable e-mail address."""


def _reminder_armed():
    return or_(Task.reminder_sent == False, Task.reminder_sent.is_(None))  # noqa: E712


class TaskStore:
    def __init__(self, bind: Engine):
        self._engine = bind

    def get(self, task_id: int) -> Task | None:
        with Session(self._engine) as db:
            return db.get(Task, task_id)

    def find_due(self, window_start: datetime, window_end: datetime, completed: bool = False) -> list[Task]:
        """Armed, notification-enabled tasks whose due_at lies in [window_start, window_end], earliest first."""
        stmt = (
            select(Task)
            .where(Task.notifications_enabled == True)  # noqa: E712
            .where(Task.completed == completed)
            .where(Task.due_at.is_not(None))
            .where(Task.due_at >= window_start)
            .where(Task.due_at <= window_end)
            .where(_reminder_armed())
            .order_by(Task.due_at.asc(), Task.id.asc())
        )
        with Session(self._engine) as db:
            return list(db.exec(stmt).all())

    def try_set_reminder_sent(self, task_id: int, due_at: datetime | None = None) -> bool:
        """
        Atomically retire the reminder: UPDATE ... WHERE reminder_sent is false.
        With due_at given, the update also requires due_at to be unchanged, so a
        reschedule that lands mid fan-out keeps the task armed.
        Returns False when another run already retired it (zero rows affected).
        """
        stmt = update(Task).where(Task.id == task_id).where(_reminder_armed())
        if due_at is not None:
            stmt = stmt.where(Task.due_at == due_at)
        stmt = stmt.values(reminder_sent=True, updated_at=utcnow())
        with Session(self._engine) as db:
            result = db.execute(stmt)
            db.commit()
            return result.rowcount == 1

    def reschedule(self, task_id: int, due_at: datetime | None) -> bool:
        """Move due_at; a non-null value re-arms the reminder in the same statement."""
        values = {"due_at": due_at, "updated_at": utcnow()}
        if due_at is not None:
            values["reminder_sent"] = False
        with Session(self._engine) as db:
            result = db.execute(update(Task).where(Task.id == task_id).values(**values))
            db.commit()
            return result.rowcount == 1


class SubscriptionStore:
    def __init__(self, bind: Engine):
        self._engine = bind

    def find_by_owner(self, user_id: int) -> list[PushSubscription]:
        stmt = select(PushSubscription).where(PushSubscription.user_id == user_id).order_by(PushSubscription.id)
        with Session(self._engine) as db:
            return list(db.exec(stmt).all())

    def find_by_endpoint(self, endpoint: str) -> PushSubscription | None:
        stmt = select(PushSubscription).where(PushSubscription.endpoint == endpoint)
        with Session(self._engine) as db:
            return db.exec(stmt).first()

    def delete_by_endpoint(self, endpoint: str) -> bool:
        with Session(self._engine) as db:
            sub = db.exec(select(PushSubscription).where(PushSubscription.endpoint == endpoint)).first()
            if sub is None:
                return False
            db.delete(sub)
            db.commit()
        log.info("Push subscription removed endpoint=%s", endpoint[:60])
        return True

    def touch_last_used(self, endpoint: str) -> None:
        now = utcnow()
        stmt = (
            update(PushSubscription)
            .where(PushSubscription.endpoint == endpoint)
            .values(last_used_at=now, updated_at=now)
        )
        with Session(self._engine) as db:
            db.execute(stmt)
            db.commit()


class UserDirectory:
    """Identity resolver: owner id -> e-mail address."""

    def __init__(self, bind: Engine):
        self._engine = bind

    def email_of(self, user_id: int) -> str:
        with Session(self._engine) as db:
            user = db.get(User, user_id)
        email = ((user.email if user else None) or "").strip()
        if not email:
            raise IdentityNotFoundError(f"no e-mail address for user {user_id}")
        return email
