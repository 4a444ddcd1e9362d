"""
Due-task scanner.

On every tick:
- computes the due window [now - lookback, now + lookahead],
- reads armed, notification-enabled, open tasks in that window (earliest first),
- hands each one to the delivery orchestrator.

A failing task is logged and the scan moves on; a failing scan (store down)
is logged and retried on the next tick. Nothing here raises to the scheduler.
Scans never overlap: a tick that finds a scan in progress is skipped.
"""
import logging
import threading
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta

from taskminder.models.clock import utcnow
from taskminder.services.orchestrator import DeliveryOrchestrator
from taskminder.services.stores import TaskStore

log = logging.getLogger("taskminder.scanner")


def due_window(now: datetime, lookback_seconds: float, lookahead_seconds: float) -> tuple[datetime, datetime]:
    return now - timedelta(seconds=lookback_seconds), now + timedelta(seconds=lookahead_seconds)


@dataclass(slots=True)
class ScanReport:
    window_start: datetime
    window_end: datetime
    found: int = 0
    delivered: int = 0
    skipped: int = 0
    failed: int = 0

    def as_dict(self) -> dict:
        data = asdict(self)
        data["window_start"] = self.window_start.isoformat()
        data["window_end"] = self.window_end.isoformat()
        return data


class DueTaskScanner:
    def __init__(
        self,
        tasks: TaskStore,
        orchestrator: DeliveryOrchestrator,
        *,
        lookback_seconds: float = 60,
        lookahead_seconds: float = 120,
        clock: Callable[[], datetime] = utcnow,
    ):
        if lookback_seconds <= 0 or lookahead_seconds <= 0:
            raise ValueError("lookback and lookahead must be greater than zero")
        self._tasks = tasks
        self._orchestrator = orchestrator
        self._lookback = lookback_seconds
        self._lookahead = lookahead_seconds
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def run_once(self) -> ScanReport | None:
        """One scheduled tick. Returns None when skipped (scan in progress) or when the scan failed."""
        if not self._lock.acquire(blocking=False):
            log.info("Notification scan already in progress; skipping")
            return None
        try:
            return self._scan()
        except Exception:
            log.exception("Notification scan failed; retrying on next tick")
            return None
        finally:
            self._lock.release()

    def trigger_manual_check(self) -> ScanReport | None:
        """Operator-triggered run; same code path as the scheduled tick."""
        log.info("Manual notification check triggered")
        return self.run_once()

    def _scan(self) -> ScanReport:
        now = self._clock()
        window_start, window_end = due_window(now, self._lookback, self._lookahead)
        tasks = self._tasks.find_due(window_start, window_end, completed=False)
        report = ScanReport(window_start=window_start, window_end=window_end, found=len(tasks))

        for task in tasks:
            try:
                outcome = self._orchestrator.deliver(task)
            except Exception:
                report.failed += 1
                log.exception("Error sending notifications for task %s", task.id)
                continue
            if outcome.skipped:
                report.skipped += 1
            else:
                report.delivered += 1

        log.info(
            "Notification scan window=[%s, %s] found=%s delivered=%s skipped=%s failed=%s",
            window_start.isoformat(timespec="seconds"),
            window_end.isoformat(timespec="seconds"),
            report.found,
            report.delivered,
            report.skipped,
            report.failed,
        )
        return report
