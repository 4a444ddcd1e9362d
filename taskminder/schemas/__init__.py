from .notification import (
    NotificationLogResponse,
    NotificationStats,
    ScanResponse,
    EmailCheckRequest,
)

__all__ = [
    "NotificationLogResponse",
    "NotificationStats",
    "ScanResponse",
    "EmailCheckRequest",
]
