from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings

# .env at the project root: taskminder/core/config.py -> taskminder/core -> taskminder -> root
_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _ROOT / ".env"


class Settings(BaseSettings):
    database_url: str = "sqlite:///./taskminder.db"
    # Guards the operator endpoints (/notifications/*). Empty = disabled.
    admin_secret: str = ""
    # Comma separated origins; "*" in development
    cors_origins: str = "*"
    rate_limit_per_minute: int = 60
    environment: str = "development"
    log_level: str = "INFO"
    # Mail submission (task reminders)
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = "noreply@taskminder.app"
    smtp_from_name: str = "Task Manager"
    smtp_use_tls: bool = True
    # Deep links in reminder e-mails: {frontend_url}/?taskId=<id>
    frontend_url: str = "http://127.0.0.1:3000"
    # Web Push (VAPID). Empty private key = push channel disabled.
    vapid_public_key: str = ""
    vapid_private_key: str = ""
    vapid_subject: str = "mailto:support@taskminder.app"
    push_ttl_seconds: int = 86400
    # Due-task scanner: window is [now - lookback, now + lookahead]
    scheduler_enabled: bool = True
    scan_interval_seconds: int = 60
    scan_lookback_seconds: int = 60
    scan_lookahead_seconds: int = 120
    send_timeout_seconds: float = 15.0
    send_max_workers: int = 8

    model_config = {
        "env_file": _ENV_FILE if _ENV_FILE.is_file() else ".env",
        "extra": "ignore",
    }

    @field_validator("vapid_private_key", "vapid_public_key", "admin_secret", mode="before")
    @classmethod
    def strip_secret(cls, v: str | None) -> str:
        """Trailing whitespace from copy/paste breaks key decoding."""
        return (v or "").strip()

    @field_validator("send_timeout_seconds", "send_max_workers", "scan_interval_seconds")
    @classmethod
    def must_be_positive(cls, v):
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def known_log_level(cls, v: str | None) -> str:
        v = (v or "INFO").strip().upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError("must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")
        return v

    @model_validator(mode="after")
    def check_scan_window(self) -> "Settings":
        """A due time must never fall between two ticks: interval < lookback + lookahead."""
        if self.scan_lookback_seconds <= 0 or self.scan_lookahead_seconds <= 0:
            raise ValueError("scan_lookback_seconds and scan_lookahead_seconds must be greater than zero")
        if self.scan_interval_seconds >= self.scan_lookback_seconds + self.scan_lookahead_seconds:
            raise ValueError("scan_interval_seconds must be less than scan_lookback_seconds + scan_lookahead_seconds")
        return self


settings = Settings()


def is_push_configured() -> bool:
    """Is a VAPID private key available?"""
    return bool((settings.vapid_private_key or "").strip())


def is_mail_configured() -> bool:
    """Are the SMTP settings filled in?"""
    return bool((settings.smtp_host or "").strip())
