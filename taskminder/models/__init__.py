from .notification_log import NotificationLog
from .push_subscription import PushSubscription
from .task import Task, TaskPriority
from .user import User

__all__ = [
    "NotificationLog",
    "PushSubscription",
    "Task",
    "TaskPriority",
    "User",
]
