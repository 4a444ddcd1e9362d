"""DueTaskScanner: due window, at-most-once delivery, failure isolation, non-overlapping ticks."""
from datetime import datetime, timedelta

import pytest

from taskminder.services.orchestrator import DeliveryReport
from taskminder.services.scanner import DueTaskScanner, ScanReport, due_window
from taskminder.services.stores import TaskStore
from tests.fakes import FakeClock

T = datetime(2026, 10, 19, 12, 0, 0)
DEVICE = "https://push.example.com/device"


@pytest.fixture
def owner(make_user, make_subscription):
    user = make_user(email="owner@example.com")
    make_subscription(user.id, DEVICE)
    return user


def test_due_window():
    assert due_window(T, 60, 120) == (T - timedelta(seconds=60), T + timedelta(seconds=120))


def test_scan_delivers_due_task_once(owner, make_task, make_pipeline):
    task = make_task(user_id=owner.id, due_at=T + timedelta(seconds=30))
    p = make_pipeline(clock=FakeClock(T))

    first = p.scanner.run_once()
    p.clock.advance(60)
    second = p.scanner.run_once()

    assert (first.found, first.delivered, first.failed) == (1, 1, 0)
    assert second.found == 0
    assert p.transport.endpoints == [DEVICE]
    assert p.email.sent == [(task.id, "owner@example.com")]
    assert p.tasks.get(task.id).reminder_sent is True


def test_scan_ignores_disabled_and_completed(owner, make_task, make_pipeline):
    make_task(user_id=owner.id, due_at=T, notifications_enabled=False)
    make_task(user_id=owner.id, due_at=T, completed=True)
    p = make_pipeline(clock=FakeClock(T))

    report = p.scanner.run_once()

    assert report.found == 0
    assert p.transport.calls == []
    assert p.email.sent == []


@pytest.mark.parametrize(
    "offset, expected",
    [
        (-121, 0),  # due time still beyond the lookahead
        (-120, 1),  # due time at the end of the window
        (0, 1),
        (60, 1),  # due time at the start of the window
        (61, 0),  # due time fell out behind the lookback
    ],
)
def test_window_boundaries(owner, make_task, make_pipeline, offset, expected):
    make_task(user_id=owner.id, due_at=T)
    p = make_pipeline(clock=FakeClock(T + timedelta(seconds=offset)))

    assert p.scanner.run_once().found == expected


def test_consecutive_ticks_cover_every_due_time(owner, make_task, make_pipeline):
    make_task(user_id=owner.id, due_at=T + timedelta(seconds=17))
    p = make_pipeline(clock=FakeClock(T - timedelta(minutes=5)))

    delivered = 0
    for _ in range(10):
        delivered += p.scanner.run_once().delivered
        p.clock.advance(60)

    assert delivered == 1


def test_rescheduled_task_is_notified_again(owner, make_task, make_pipeline):
    task = make_task(user_id=owner.id, due_at=T)
    p = make_pipeline(clock=FakeClock(T))
    assert p.scanner.run_once().delivered == 1

    later = T + timedelta(days=1)
    p.tasks.reschedule(task.id, later)
    assert p.scanner.run_once().found == 0

    p.clock.now = later
    assert p.scanner.run_once().delivered == 1
    assert len(p.email.sent) == 2


class _BrokenStore:
    def find_due(self, *args, **kwargs):
        raise ConnectionError("database unavailable")


class _StubOrchestrator:
    def __init__(self, fail_ids=(), on_deliver=None):
        self.fail_ids = set(fail_ids)
        self.on_deliver = on_deliver
        self.delivered = []

    def deliver(self, task):
        if self.on_deliver is not None:
            self.on_deliver(task)
        if task.id in self.fail_ids:
            raise RuntimeError("boom")
        self.delivered.append(task.id)
        return DeliveryReport(task_id=task.id, retired=True)


def test_store_failure_is_swallowed():
    scanner = DueTaskScanner(_BrokenStore(), _StubOrchestrator(), clock=FakeClock(T))

    assert scanner.run_once() is None
    assert not scanner.running


def test_failing_task_does_not_stop_the_scan(engine, owner, make_task):
    bad = make_task(user_id=owner.id, due_at=T)
    good = make_task(user_id=owner.id, due_at=T + timedelta(seconds=10))
    orchestrator = _StubOrchestrator(fail_ids={bad.id})
    scanner = DueTaskScanner(TaskStore(engine), orchestrator, clock=FakeClock(T))

    report = scanner.run_once()

    assert (report.found, report.delivered, report.failed) == (2, 1, 1)
    assert orchestrator.delivered == [good.id]


def test_tick_during_running_scan_is_skipped(engine, owner, make_task):
    make_task(user_id=owner.id, due_at=T)
    nested = []
    scanner = None

    def tick_again(task):
        nested.append(scanner.run_once())

    orchestrator = _StubOrchestrator(on_deliver=tick_again)
    scanner = DueTaskScanner(TaskStore(engine), orchestrator, clock=FakeClock(T))

    report = scanner.run_once()

    assert report.delivered == 1
    assert nested == [None]
    assert not scanner.running


def test_manual_check_uses_the_same_scan(owner, make_task, make_pipeline):
    make_task(user_id=owner.id, due_at=T)
    p = make_pipeline(clock=FakeClock(T))

    report = p.scanner.trigger_manual_check()

    assert isinstance(report, ScanReport)
    assert report.delivered == 1
    assert report.as_dict()["window_start"] == "2026-10-19T11:59:00"


@pytest.mark.parametrize("lookback, lookahead", [(0, 120), (60, 0), (-1, 60)])
def test_window_must_be_positive(lookback, lookahead):
    with pytest.raises(ValueError):
        DueTaskScanner(_BrokenStore(), _StubOrchestrator(), lookback_seconds=lookback, lookahead_seconds=lookahead)
