"""Web Push delivery (VAPID signed, pywebpush) and push endpoint lifecycle.

Response handling per device:
- 2xx       -> sent; subscription last_used_at refreshed
- 404 / 410 -> endpoint gone; subscription row deleted, never retried
- anything else (other 4xx, 5xx, network error) -> transient; row kept

Transport failures are raised internally as PushDeliveryError / PushGoneError
and turned into a DeliveryResult by PushSender.send.
"""
import json
import logging
import threading
from collections.abc import Callable

from py_vapid import Vapid
from pywebpush import WebPushException, webpush

from taskminder.models import PushSubscription
from taskminder.models.notification_log import CHANNEL_PUSH
from taskminder.services.outcomes import DeliveryResult, DeliveryStatus
from taskminder.services.stores import SubscriptionStore

log = logging.getLogger("taskminder.push")

# 4096-byte push record minus aes128gcm header, tag and padding overhead
MAX_PAYLOAD_BYTES = 3993
MAX_TITLE_CHARS = 200
GONE_STATUS_CODES = (404, 410)

_vapid_lock = threading.Lock()
_vapid: Vapid | None = None


class PushNotConfiguredError(RuntimeError):
    """VAPID_PRIVATE_KEY is missing."""


class PushDeliveryError(RuntimeError):
    """The push service refused the message or could not be reached; worth retrying."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PushGoneError(PushDeliveryError):
    """404/410: the subscription endpoint no longer exists."""


def error_for_status(status_code: int | None, detail: str | None = None) -> PushDeliveryError:
    if status_code in GONE_STATUS_CODES:
        return PushGoneError(f"HTTP {status_code}: endpoint gone", status_code)
    message = f"HTTP {status_code}" if status_code is not None else "push error"
    if detail:
        message = f"{message}: {detail}"
    return PushDeliveryError(message, status_code)


def init_vapid(private_key: str) -> Vapid:
    """
    Load the VAPID signing key once per process.
    Check, then load under the lock; a second call returns the loaded key.
    """
    global _vapid
    if _vapid is not None:
        log.info("VAPID key already loaded")
        return _vapid
    with _vapid_lock:
        if _vapid is None:
            key = (private_key or "").strip()
            if not key:
                raise PushNotConfiguredError("VAPID_PRIVATE_KEY is not set")
            _vapid = Vapid.from_string(private_key=key)
            log.info("VAPID key loaded")
        else:
            log.info("VAPID key already loaded")
    return _vapid


def _encode_payload(title: str, body: str, task_id: int) -> str:
    return json.dumps({"title": title, "body": body, "data": {"taskId": str(task_id)}}, ensure_ascii=False)


def build_payload(title: str, body: str, task_id: int) -> str:
    """{"title", "body", "data": {"taskId"}} as JSON, body cut to the longest prefix that fits MAX_PAYLOAD_BYTES."""
    title = (title or "")[:MAX_TITLE_CHARS]
    body = body or ""
    payload = _encode_payload(title, body, task_id)
    if len(payload.encode("utf-8")) <= MAX_PAYLOAD_BYTES:
        return payload
    # Encoded size grows with the prefix length (multi-byte chars, JSON escapes)
    lo, hi = 0, len(body)
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if len(_encode_payload(title, body[:mid], task_id).encode("utf-8")) <= MAX_PAYLOAD_BYTES:
            lo = mid
        else:
            hi = mid - 1
    return _encode_payload(title, body[:lo], task_id)


class PushSender:
    def __init__(
        self,
        subscriptions: SubscriptionStore,
        vapid_private_key: Vapid | str | None,
        vapid_subject: str,
        *,
        ttl: int = 86400,
        timeout: float = 15.0,
        transport: Callable | None = None,
    ):
        self._subscriptions = subscriptions
        self._vapid_key = vapid_private_key
        self._vapid_subject = vapid_subject
        self._ttl = ttl
        self._timeout = timeout
        self._transport = transport or webpush

    @property
    def configured(self) -> bool:
        return bool(self._vapid_key)

    def send(self, subscription: PushSubscription, title: str, body: str, task_id: int) -> DeliveryResult:
        if not self.configured:
            return self._result(DeliveryStatus.TRANSIENT, subscription, "push not configured (VAPID_PRIVATE_KEY)")

        try:
            self._deliver(subscription, build_payload(title, body, task_id))
        except PushGoneError as e:
            log.warning(
                "Push subscription %s expired (HTTP %s), removing endpoint=%s",
                subscription.id,
                e.status_code,
                subscription.endpoint[:60],
            )
            self._prune(subscription.endpoint)
            return self._result(DeliveryStatus.GONE, subscription, str(e))
        except PushDeliveryError as e:
            log.warning(
                "Push send failed task_id=%s subscription=%s status=%s: %s",
                task_id,
                subscription.id,
                e.status_code,
                str(e)[:200],
            )
            return self._result(DeliveryStatus.TRANSIENT, subscription, str(e))

        self._touch(subscription.endpoint)
        log.info("Push sent task_id=%s subscription=%s", task_id, subscription.id)
        return self._result(DeliveryStatus.SENT, subscription, None)

    def _deliver(self, subscription: PushSubscription, payload: str) -> None:
        """One HTTP delivery; raises PushGoneError / PushDeliveryError on anything but 2xx."""
        try:
            response = self._transport(
                subscription_info=subscription.subscription_info(),
                data=payload,
                vapid_private_key=self._vapid_key,
                # pywebpush fills in aud/exp on the dict it is given
                vapid_claims={"sub": self._vapid_subject},
                ttl=self._ttl,
                timeout=self._timeout,
            )
        except WebPushException as e:
            raise error_for_status(getattr(e.response, "status_code", None), str(e)) from e
        except Exception as e:
            raise PushDeliveryError(f"network error: {e}") from e
        status_code = getattr(response, "status_code", 201)
        if not 200 <= status_code < 300:
            raise error_for_status(status_code)

    @staticmethod
    def _result(status: DeliveryStatus, subscription: PushSubscription, error: str | None) -> DeliveryResult:
        return DeliveryResult(CHANNEL_PUSH, status, subscription.endpoint, subscription.device_type, error)

    def _touch(self, endpoint: str) -> None:
        try:
            self._subscriptions.touch_last_used(endpoint)
        except Exception as e:
            log.warning("Failed to update last_used_at endpoint=%s: %s", endpoint[:60], e)

    def _prune(self, endpoint: str) -> None:
        try:
            self._subscriptions.delete_by_endpoint(endpoint)
        except Exception:
            log.exception("Failed to delete expired push subscription endpoint=%s", endpoint[:60])
