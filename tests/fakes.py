"""Fakes for the notification pipeline: Web Push transport, e-mail sender, clock."""
import threading
import time
from datetime import datetime, timedelta
from types import SimpleNamespace

from pywebpush import WebPushException

from taskminder.services.audit import AuditWriter
from taskminder.services.orchestrator import DeliveryOrchestrator
from taskminder.services.push_sender import PushSender
from taskminder.services.scanner import DueTaskScanner
from taskminder.services.stores import SubscriptionStore, TaskStore, UserDirectory


class FakeTransport:
    """
    Stands in for pywebpush.webpush.

    statuses maps endpoint -> HTTP status (default 201) or an exception to raise.
    Like pywebpush, any status >= 400 is raised as WebPushException.
    """

    def __init__(
        self,
        statuses: dict | None = None,
        block: threading.Event | None = None,
        delay: float = 0.0,
    ) -> None:
        self.statuses = statuses or {}
        self.block = block
        self.delay = delay
        self.calls: list[dict] = []
        self._lock = threading.Lock()

    def __call__(self, *, subscription_info, data, vapid_private_key, vapid_claims, ttl, timeout):
        with self._lock:
            self.calls.append(
                {
                    "endpoint": subscription_info["endpoint"],
                    "keys": subscription_info["keys"],
                    "data": data,
                    "vapid_private_key": vapid_private_key,
                    "vapid_claims": dict(vapid_claims),
                    "ttl": ttl,
                    "timeout": timeout,
                }
            )
        if self.delay:
            time.sleep(self.delay)
        if self.block is not None:
            self.block.wait(5)
        outcome = self.statuses.get(subscription_info["endpoint"], 201)
        if isinstance(outcome, BaseException):
            raise outcome
        response = SimpleNamespace(status_code=outcome, text="")
        if outcome >= 400:
            raise WebPushException(f"Push failed: {outcome}", response=response)
        return response

    @property
    def endpoints(self) -> list[str]:
        return [c["endpoint"] for c in self.calls]


class FakeEmailSender:
    def __init__(self, error: Exception | None = None, on_send=None) -> None:
        self.error = error
        self.on_send = on_send
        self.sent: list[tuple[int, str]] = []

    def send(self, task, address: str) -> None:
        if self.on_send is not None:
            self.on_send(task, address)
        if self.error is not None:
            raise self.error
        self.sent.append((task.id, address))


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


def build_pipeline(
    engine,
    *,
    transport: FakeTransport | None = None,
    email: FakeEmailSender | None = None,
    audit: AuditWriter | None = None,
    clock: FakeClock | None = None,
    send_timeout: float = 5.0,
    max_workers: int = 4,
) -> SimpleNamespace:
    """Real stores, orchestrator and scanner on the test engine; network edges faked."""
    tasks = TaskStore(engine)
    subscriptions = SubscriptionStore(engine)
    transport = transport or FakeTransport()
    email = email or FakeEmailSender()
    push = PushSender(subscriptions, "test-vapid-key", "mailto:test@example.com", transport=transport)
    orchestrator = DeliveryOrchestrator(
        tasks,
        subscriptions,
        UserDirectory(engine),
        push,
        email,
        audit or AuditWriter(engine),
        send_timeout=send_timeout,
        max_workers=max_workers,
    )
    clock = clock or FakeClock(datetime(2026, 10, 19, 12, 0, 0))
    scanner = DueTaskScanner(tasks, orchestrator, lookback_seconds=60, lookahead_seconds=120, clock=clock)
    return SimpleNamespace(
        tasks=tasks,
        subscriptions=subscriptions,
        transport=transport,
        email=email,
        push=push,
        orchestrator=orchestrator,
        scanner=scanner,
        clock=clock,
    )
