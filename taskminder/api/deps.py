"""Operator auth (X-Admin-Secret) and access to the notification pipeline."""
import hmac

from fastapi import Header, HTTPException, Request

from taskminder.core.config import settings
from taskminder.services.pipeline import NotificationPipeline


def _secret_matches(provided: str | None, expected: str | None) -> bool:
    """Timing-safe comparison."""
    return hmac.compare_digest((provided or "").encode("utf-8"), (expected or "").encode("utf-8"))


def require_admin(
    x_admin_secret: str | None = Header(None, alias="X-Admin-Secret"),
) -> None:
    expected = (settings.admin_secret or "").strip()
    if not expected:
        raise HTTPException(status_code=503, detail="Operator API not configured (ADMIN_SECRET missing).")
    if not _secret_matches(x_admin_secret, expected):
        raise HTTPException(status_code=403, detail="Forbidden.")


def get_pipeline(request: Request) -> NotificationPipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Notification pipeline not running.")
    return pipeline
