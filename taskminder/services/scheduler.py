"""APScheduler wiring for the due-task scan (runs inside the API process)."""
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from taskminder.services.scanner import DueTaskScanner

log = logging.getLogger("taskminder.scheduler")

SCAN_JOB_ID = "due-task-scan"


def build_scheduler(scanner: DueTaskScanner, interval_seconds: int) -> BackgroundScheduler:
    scheduler = BackgroundScheduler(
        timezone="UTC",
        job_defaults={
            "coalesce": True,  # missed ticks collapse into one run
            "max_instances": 1,  # a tick never starts while the previous one runs
            "misfire_grace_time": interval_seconds,
        },
    )
    scheduler.add_job(
        scanner.run_once,
        IntervalTrigger(seconds=interval_seconds),
        id=SCAN_JOB_ID,
        name="Due-task notification scan",
        replace_existing=True,
    )
    log.info("Notification scan scheduled every %ss", interval_seconds)
    return scheduler
