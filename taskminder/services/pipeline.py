"""Builds the notification pipeline (stores -> senders -> orchestrator -> scanner -> scheduler)."""
import logging
from dataclasses import dataclass

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.engine import Engine

from taskminder.core.config import Settings
from taskminder.services.audit import AuditWriter
from taskminder.services.email_sender import EmailSender
from taskminder.services.orchestrator import DeliveryOrchestrator
from taskminder.services.push_sender import PushSender, init_vapid
from taskminder.services.scanner import DueTaskScanner
from taskminder.services.scheduler import build_scheduler
from taskminder.services.stores import SubscriptionStore, TaskStore, UserDirectory

log = logging.getLogger("taskminder")


@dataclass
class NotificationPipeline:
    scanner: DueTaskScanner
    orchestrator: DeliveryOrchestrator
    push_sender: PushSender
    scheduler: BackgroundScheduler | None = None

    @property
    def scheduler_running(self) -> bool:
        return bool(self.scheduler and self.scheduler.running)

    def start(self) -> None:
        if self.scheduler is not None and not self.scheduler.running:
            self.scheduler.start()
            log.info("Notification scheduler started")

    def shutdown(self) -> None:
        if self.scheduler is not None and self.scheduler.running:
            # In-flight sends may be abandoned; the reminder flag keeps retries safe
            self.scheduler.shutdown(wait=False)
            log.info("Notification scheduler stopped")
        self.orchestrator.shutdown()


def _load_vapid(cfg: Settings):
    if not cfg.vapid_private_key:
        log.warning("VAPID_PRIVATE_KEY not set; push notifications disabled")
        return None
    try:
        return init_vapid(cfg.vapid_private_key)
    except Exception:
        log.exception("Invalid VAPID_PRIVATE_KEY; push notifications disabled")
        return None


def build_pipeline(bind: Engine, cfg: Settings) -> NotificationPipeline:
    tasks = TaskStore(bind)
    subscriptions = SubscriptionStore(bind)
    push_sender = PushSender(
        subscriptions,
        _load_vapid(cfg),
        cfg.vapid_subject,
        ttl=cfg.push_ttl_seconds,
        timeout=cfg.send_timeout_seconds,
    )
    orchestrator = DeliveryOrchestrator(
        tasks,
        subscriptions,
        UserDirectory(bind),
        push_sender,
        EmailSender(frontend_url=cfg.frontend_url, from_name=cfg.smtp_from_name),
        AuditWriter(bind),
        send_timeout=cfg.send_timeout_seconds,
        max_workers=cfg.send_max_workers,
    )
    scanner = DueTaskScanner(
        tasks,
        orchestrator,
        lookback_seconds=cfg.scan_lookback_seconds,
        lookahead_seconds=cfg.scan_lookahead_seconds,
    )
    scheduler = build_scheduler(scanner, cfg.scan_interval_seconds) if cfg.scheduler_enabled else None
    return NotificationPipeline(scanner=scanner, orchestrator=orchestrator, push_sender=push_sender, scheduler=scheduler)
