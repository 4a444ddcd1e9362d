"""Delivery orchestrator: one due task -> every push device + e-mail, audited, then retired.

Channels and devices are sent independently: push sends on a bounded thread
pool, the e-mail on its own pool so it never queues behind slow devices.
Each send gets SEND_TIMEOUT seconds from the moment it starts running; a
send still queued after every wave of the push pool had its turn is dropped.
Each attempt yields a DeliveryResult and one audit row. The reminder flag is
set last, with an atomic guarded update, whatever the individual outcomes
were, so a channel that keeps failing cannot re-trigger the same task every tick.
"""
import logging
import math
import time
from concurrent.futures import FIRST_COMPLETED, Executor, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field, replace

from taskminder.models import Task
from taskminder.models.notification_log import CHANNEL_EMAIL, CHANNEL_PUSH
from taskminder.services.audit import AuditWriter
from taskminder.services.email_sender import EmailSender
from taskminder.services.outcomes import DeliveryResult, DeliveryStatus
from taskminder.services.push_sender import PushSender
from taskminder.services.stores import SubscriptionStore, TaskStore, UserDirectory

log = logging.getLogger("taskminder.orchestrator")

PUSH_TITLE_PREFIX = "⏰ Task Due: "
DEFAULT_DEVICE = "web"
# Upper bound between checks while some sends have not started yet
_POLL_SECONDS = 0.05


def compose_push_message(task: Task) -> tuple[str, str]:
    """(title, body); the due time is shown to the minute."""
    if task.due_at is None:
        raise ValueError(f"task {task.id} has no due date")
    due = task.due_at.replace(second=0, microsecond=0).isoformat(timespec="minutes")
    priority = getattr(task.priority, "value", task.priority) or "MEDIUM"
    return f"{PUSH_TITLE_PREFIX}{task.title}", f"Priority: {priority} | Due: {due}"


@dataclass(slots=True)
class DeliveryReport:
    task_id: int
    results: list[DeliveryResult] = field(default_factory=list)
    retired: bool = False
    skipped: bool = False

    @property
    def sent(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.ok)


@dataclass(slots=True)
class _Attempt:
    # result recorded if the send misses its deadline
    fallback: DeliveryResult
    started: float | None = None


class DeliveryOrchestrator:
    def __init__(
        self,
        tasks: TaskStore,
        subscriptions: SubscriptionStore,
        identities: UserDirectory,
        push_sender: PushSender,
        email_sender: EmailSender,
        audit: AuditWriter,
        *,
        send_timeout: float = 15.0,
        max_workers: int = 8,
        push_executor: Executor | None = None,
        email_executor: Executor | None = None,
    ):
        self._tasks = tasks
        self._subscriptions = subscriptions
        self._identities = identities
        self._push = push_sender
        self._email = email_sender
        self._audit = audit
        self._send_timeout = send_timeout
        self._max_workers = max_workers
        self._push_pool = push_executor or ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify-push")
        self._email_pool = email_executor or ThreadPoolExecutor(
            max_workers=max(2, max_workers // 4), thread_name_prefix="notify-email"
        )

    def shutdown(self) -> None:
        self._push_pool.shutdown(wait=False, cancel_futures=True)
        self._email_pool.shutdown(wait=False, cancel_futures=True)

    def deliver(self, task: Task) -> DeliveryReport:
        current = self._tasks.get(task.id)
        if current is None or current.reminder_sent:
            log.info("Task %s already retired or deleted; skipping", task.id)
            return DeliveryReport(task_id=task.id, skipped=True)

        log.info("Sending notifications for task %s (%s) user_id=%s", current.id, current.title, current.user_id)
        report = DeliveryReport(task_id=current.id, results=self._fan_out(current))

        for result in report.results:
            self._audit.record(
                task_id=current.id,
                owner=current.user_id,
                channel=result.channel,
                outcome=result.audit_status,
                error=result.error,
                target=result.target,
                device=result.device,
            )

        report.retired = self._tasks.try_set_reminder_sent(current.id, due_at=current.due_at)
        if not report.retired:
            log.warning("Task %s was retired or rescheduled during fan-out; flag left as is", current.id)
        log.info(
            "Notifications done for task %s: sent=%s failed=%s",
            current.id,
            report.sent,
            report.failed,
        )
        return report

    def _fan_out(self, task: Task) -> list[DeliveryResult]:
        results: list[DeliveryResult] = []
        attempts: dict[Future, _Attempt] = {}

        try:
            title, body = compose_push_message(task)
            subscriptions = self._subscriptions.find_by_owner(task.user_id)
        except Exception as e:
            log.warning("Push channel unavailable for task %s: %s", task.id, e)
            results.append(DeliveryResult(CHANNEL_PUSH, DeliveryStatus.TRANSIENT, error=str(e)))
            subscriptions = []
        if not subscriptions:
            log.info("No push subscriptions for user_id=%s", task.user_id)
        for sub in subscriptions:
            attempt = _Attempt(
                DeliveryResult(CHANNEL_PUSH, DeliveryStatus.TRANSIENT, sub.endpoint, sub.device_type, "timeout")
            )
            future = self._push_pool.submit(self._timed, attempt, self._push.send, sub, title, body, task.id)
            attempts[future] = attempt

        # E-mail rows carry the device the task was created from
        device = task.created_from_device or DEFAULT_DEVICE
        try:
            address = self._identities.email_of(task.user_id)
        except Exception as e:
            log.warning("Email channel unavailable for task %s: %s", task.id, e)
            results.append(DeliveryResult(CHANNEL_EMAIL, DeliveryStatus.TRANSIENT, None, device, str(e)))
        else:
            attempt = _Attempt(DeliveryResult(CHANNEL_EMAIL, DeliveryStatus.TRANSIENT, address, device, "timeout"))
            future = self._email_pool.submit(self._timed, attempt, self._send_email, task, address, device)
            attempts[future] = attempt

        if attempts:
            waves = math.ceil(len(subscriptions) / self._max_workers) + 1
            results.extend(self._collect(task, attempts, queue_budget=self._send_timeout * waves))
        return results

    @staticmethod
    def _timed(attempt: _Attempt, send, *args) -> DeliveryResult:
        attempt.started = time.monotonic()
        return send(*args)

    def _collect(self, task: Task, attempts: dict[Future, _Attempt], queue_budget: float) -> list[DeliveryResult]:
        """
        Waits until every attempt has finished, timed out, or been dropped.
        A running send times out send_timeout after it started; a send that
        has not started within queue_budget is cancelled.
        """
        results: list[DeliveryResult] = []
        pending = dict(attempts)
        give_up_at = time.monotonic() + queue_budget

        while pending:
            deadlines = [a.started + self._send_timeout for a in pending.values() if a.started is not None]
            timeout = max(0.0, min(deadlines) - time.monotonic()) if deadlines else _POLL_SECONDS
            if len(deadlines) < len(pending):
                timeout = min(timeout, _POLL_SECONDS)
            done, _ = wait(pending, timeout=timeout, return_when=FIRST_COMPLETED)

            for future in done:
                attempt = pending.pop(future)
                try:
                    results.append(future.result())
                except Exception as e:
                    log.warning("%s send crashed for task %s: %s", attempt.fallback.channel, task.id, e)
                    results.append(replace(attempt.fallback, error=str(e)))

            now = time.monotonic()
            for future, attempt in list(pending.items()):
                fallback = attempt.fallback
                if attempt.started is not None:
                    if now - attempt.started < self._send_timeout:
                        continue
                    log.warning("%s send timed out for task %s target=%s", fallback.channel, task.id, fallback.target)
                elif now < give_up_at or not future.cancel():
                    continue
                else:
                    log.warning("%s send never started for task %s target=%s", fallback.channel, task.id, fallback.target)
                    fallback = replace(fallback, error="timeout: send never started")
                del pending[future]
                results.append(fallback)
        return results

    def _send_email(self, task: Task, address: str, device: str) -> DeliveryResult:
        try:
            self._email.send(task, address)
        except Exception as e:
            log.warning("Failed to send email notification for task %s to %s: %s", task.id, address, e)
            return DeliveryResult(CHANNEL_EMAIL, DeliveryStatus.TRANSIENT, address, device, str(e))
        return DeliveryResult(CHANNEL_EMAIL, DeliveryStatus.SENT, address, device)
