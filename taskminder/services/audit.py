"""Notification audit trail (notification_logs): best-effort writer plus the read queries."""
import logging
from datetime import datetime

from sqlalchemy.engine import Engine
from sqlmodel import Session, func, select

from taskminder.models import NotificationLog
from taskminder.models.notification_log import STATUS_FAILED, STATUS_SENT

log = logging.getLogger("taskminder.audit")


class AuditWriter:
    """
    Appends NotificationLog rows. Write failures are logged and swallowed:
    the audit trail must never block or roll back a delivery.
    """

    def __init__(self, bind: Engine):
        self._engine = bind

    def append(self, entry: NotificationLog) -> bool:
        try:
            with Session(self._engine) as db:
                db.add(entry)
                db.commit()
            return True
        except Exception as e:
            log.warning(
                "NotificationLog write failed task_id=%s channel=%s status=%s: %s",
                entry.task_id,
                entry.channel,
                entry.status,
                e,
            )
            return False

    def record(
        self,
        task_id: int,
        owner: int,
        channel: str,
        outcome: str,
        error: str | None = None,
        target: str | None = None,
        device: str | None = None,
    ) -> bool:
        return self.append(
            NotificationLog(
                task_id=task_id,
                user_id=owner,
                channel=channel,
                status=outcome,
                error_message=error[:2000] if error else None,
                target=target,
                device_type=device,
            )
        )


def list_logs(
    db: Session,
    *,
    task_id: int | None = None,
    user_id: int | None = None,
    status: str | None = None,
    channel: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = 200,
) -> list[NotificationLog]:
    """Newest first, optionally filtered by task, user, status, channel and created_at range."""
    stmt = select(NotificationLog)
    if task_id is not None:
        stmt = stmt.where(NotificationLog.task_id == task_id)
    if user_id is not None:
        stmt = stmt.where(NotificationLog.user_id == user_id)
    if status:
        stmt = stmt.where(NotificationLog.status == status)
    if channel:
        stmt = stmt.where(NotificationLog.channel == channel)
    if since is not None:
        stmt = stmt.where(NotificationLog.created_at >= since)
    if until is not None:
        stmt = stmt.where(NotificationLog.created_at <= until)
    stmt = stmt.order_by(NotificationLog.created_at.desc(), NotificationLog.id.desc()).limit(limit)
    return list(db.exec(stmt).all())


def count_by_status(db: Session) -> dict[str, int]:
    counts = {STATUS_SENT: 0, STATUS_FAILED: 0}
    rows = db.exec(select(NotificationLog.status, func.count(NotificationLog.id)).group_by(NotificationLog.status)).all()
    for status, n in rows:
        counts[status] = n
    return counts
