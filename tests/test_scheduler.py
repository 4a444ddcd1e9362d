"""Scheduler wiring and pipeline start/stop."""
from datetime import timedelta

from taskminder.core.config import Settings
from taskminder.services.pipeline import build_pipeline
from taskminder.services.scheduler import SCAN_JOB_ID, build_scheduler


def test_scan_job_is_registered(engine):
    pipeline = build_pipeline(engine, Settings(_env_file=None, scheduler_enabled=False))
    scheduler = build_scheduler(pipeline.scanner, 45)
    try:
        job = scheduler.get_job(SCAN_JOB_ID)
        assert job is not None
        assert job.trigger.interval == timedelta(seconds=45)
        assert job.func == pipeline.scanner.run_once
    finally:
        pipeline.shutdown()


def test_pipeline_without_scheduler(engine):
    pipeline = build_pipeline(engine, Settings(_env_file=None, scheduler_enabled=False))
    pipeline.start()
    try:
        assert pipeline.scheduler is None
        assert not pipeline.scheduler_running
        assert not pipeline.push_sender.configured
    finally:
        pipeline.shutdown()


def test_pipeline_starts_and_stops_scheduler(engine):
    pipeline = build_pipeline(engine, Settings(_env_file=None, scheduler_enabled=True))
    pipeline.start()
    try:
        assert pipeline.scheduler_running
    finally:
        pipeline.shutdown()
    assert not pipeline.scheduler_running


def test_invalid_vapid_key_disables_push(engine, monkeypatch):
    from taskminder.services import push_sender

    monkeypatch.setattr(push_sender, "_vapid", None)
    pipeline = build_pipeline(engine, Settings(_env_file=None, scheduler_enabled=False, vapid_private_key="not-a-key"))
    try:
        assert not pipeline.push_sender.configured
    finally:
        pipeline.shutdown()
