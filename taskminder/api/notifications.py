"""Operator API for the reminder pipeline: manual scan, SMTP check, audit trail."""
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlmodel import Session

from taskminder.api.deps import get_pipeline, require_admin
from taskminder.core.database import get_db
from taskminder.core.rate_limit import limiter, manual_check_limit
from taskminder.schemas import EmailCheckRequest, NotificationLogResponse, NotificationStats, ScanResponse
from taskminder.services.audit import count_by_status, list_logs
from taskminder.services.email_sender import EmailDeliveryError, EmailNotConfiguredError, send_test_email
from taskminder.services.pipeline import NotificationPipeline

router = APIRouter(prefix="/notifications", tags=["notifications"], dependencies=[Depends(require_admin)])


@router.post("/check", response_model=ScanResponse)
@limiter.limit(manual_check_limit)
def trigger_check(request: Request, pipeline: NotificationPipeline = Depends(get_pipeline)):
    """Runs one due-task scan now. triggered=false when a scan is already running or the scan failed."""
    report = pipeline.scanner.trigger_manual_check()
    if report is None:
        return ScanResponse(triggered=False)
    return ScanResponse(triggered=True, **report.as_dict())


@router.post("/test-email")
def test_email(body: EmailCheckRequest):
    try:
        send_test_email(str(body.to))
    except EmailNotConfiguredError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except EmailDeliveryError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"success": True, "message": f"Test email sent to {body.to}"}


@router.get("/logs", response_model=list[NotificationLogResponse])
def notification_logs(
    db: Session = Depends(get_db),
    task_id: int | None = None,
    user_id: int | None = None,
    status: str | None = Query(None, description="sent | failed"),
    channel: str | None = Query(None, description="push | email"),
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = Query(200, ge=1, le=500),
):
    """Audit records, newest first."""
    return list_logs(
        db,
        task_id=task_id,
        user_id=user_id,
        status=status,
        channel=channel,
        since=since,
        until=until,
        limit=limit,
    )


@router.get("/stats", response_model=NotificationStats)
def notification_stats(db: Session = Depends(get_db)):
    counts = count_by_status(db)
    return NotificationStats(sent=counts.get("sent", 0), failed=counts.get("failed", 0))
