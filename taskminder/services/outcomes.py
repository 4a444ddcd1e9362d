"""Typed per-attempt outcomes returned by the channel senders."""
from dataclasses import dataclass
from enum import Enum

from taskminder.models.notification_log import STATUS_FAILED, STATUS_SENT


class DeliveryStatus(str, Enum):
    SENT = "sent"
    TRANSIENT = "transient"  # retry-worthy: 5xx, other 4xx, network error, timeout
    GONE = "gone"  # push endpoint permanently invalid (404/410)


@dataclass(slots=True, frozen=True)
class DeliveryResult:
    channel: str
    status: DeliveryStatus
    target: str | None = None
    device: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == DeliveryStatus.SENT

    @property
    def audit_status(self) -> str:
        return STATUS_SENT if self.ok else STATUS_FAILED
