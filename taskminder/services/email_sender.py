"""E-mail delivery: task due reminders over SMTP (HTML + plain text alternative)."""
import html
import logging
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from taskminder.core.config import is_mail_configured, settings
from taskminder.models import Task

log = logging.getLogger("taskminder.email")

DUE_DATE_FORMAT = "%b %d, %Y at %I:%M %p"

PRIORITY_COLORS = {
    "HIGH": "#dc3545",
    "MEDIUM": "#ffc107",
    "LOW": "#28a745",
}
DEFAULT_PRIORITY_COLOR = "#6c757d"


class EmailNotConfiguredError(RuntimeError):
    """SMTP_HOST is missing."""


class EmailDeliveryError(RuntimeError):
    """SMTP auth, connection or recipient rejection."""


class EmailTemplateError(ValueError):
    """The task lacks a field the reminder template needs."""


def _priority_name(priority) -> str:
    return str(getattr(priority, "value", priority) or "").upper()


def priority_color(priority) -> str:
    return PRIORITY_COLORS.get(_priority_name(priority), DEFAULT_PRIORITY_COLOR)


def format_due_date(due_at: datetime) -> str:
    """Oct 19, 2026 at 02:05 PM"""
    return due_at.strftime(DUE_DATE_FORMAT)


def _frontend_base(frontend_url: str | None) -> str:
    base = (frontend_url if frontend_url is not None else settings.frontend_url) or ""
    return base.strip().rstrip("/") or "http://127.0.0.1:3000"


def task_link(task_id: int, frontend_url: str | None = None) -> str:
    return f"{_frontend_base(frontend_url)}/?taskId={task_id}"


def build_task_due_email(
    task: Task,
    *,
    frontend_url: str | None = None,
    from_name: str | None = None,
) -> tuple[str, str, str]:
    """Reminder e-mail for a due task: (subject, html_body, text_body). No side effects."""
    if task.due_at is None:
        raise EmailTemplateError(f"task {task.id} has no due date")
    base = _frontend_base(frontend_url)
    from_name = from_name if from_name is not None else (settings.smtp_from_name or "Task Manager")

    subject = f"⏰ Task Due: {task.title}"
    priority = _priority_name(task.priority) or "MEDIUM"
    color = priority_color(priority)
    due = format_due_date(task.due_at)
    link = task_link(task.id, base)
    title = html.escape(task.title or "")

    html_body = f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1.0" />
  <title>{html.escape(subject)}</title>
</head>
<body style="margin:0;padding:0;font-family:Arial,sans-serif;background-color:#f4f4f4;">
  <table role="presentation" width="100%" cellpadding="0" cellspacing="0" style="background-color:#f4f4f4;padding:20px;">
    <tr>
      <td align="center">
        <table role="presentation" width="600" cellpadding="0" cellspacing="0" style="background-color:#ffffff;border-radius:8px;overflow:hidden;box-shadow:0 2px 4px rgba(0,0,0,0.1);">
          <tr>
            <td style="background:linear-gradient(135deg,#667eea 0%,#764ba2 100%);padding:30px;text-align:center;">
              <h1 style="color:#ffffff;margin:0;font-size:24px;">⏰ Task Reminder</h1>
            </td>
          </tr>
          <tr>
            <td style="padding:30px;">
              <h2 style="color:#333333;margin-top:0;">Your task is due!</h2>
              <div style="background-color:#f8f9fa;border-left:4px solid {color};padding:15px;margin:20px 0;border-radius:4px;">
                <h3 style="color:#333333;margin-top:0;">{title}</h3>
                <p style="color:#666666;margin:10px 0;">
                  <strong>Priority:</strong>
                  <span style="background-color:{color};color:white;padding:3px 10px;border-radius:12px;font-size:12px;">{priority}</span>
                </p>
                <p style="color:#666666;margin:10px 0;"><strong>Due Date:</strong> {due}</p>
              </div>
              <div style="text-align:center;margin:30px 0;">
                <a href="{link}" style="background:linear-gradient(135deg,#667eea 0%,#764ba2 100%);color:white;padding:12px 30px;text-decoration:none;border-radius:25px;display:inline-block;font-weight:bold;">View Task</a>
              </div>
              <p style="color:#999999;font-size:12px;text-align:center;margin-top:30px;">
                You're receiving this because you have notifications enabled for this task.
              </p>
            </td>
          </tr>
          <tr>
            <td style="background-color:#f8f9fa;padding:20px;text-align:center;">
              <p style="color:#999999;font-size:12px;margin:0;">
                {html.escape(from_name)}<br>
                <a href="{base}" style="color:#667eea;text-decoration:none;">Visit Dashboard</a>
              </p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>"""

    text_body = (
        f"Your task is due!\n\n"
        f"{task.title}\n"
        f"Priority: {priority}\n"
        f"Due Date: {due}\n\n"
        f"View task: {link}\n"
    )
    return subject, html_body, text_body


def send_email(to: str, subject: str, html_body: str, text_body: str | None = None) -> None:
    """Sends one message in a single SMTP transaction. Raises on any failure."""
    if not is_mail_configured():
        raise EmailNotConfiguredError("SMTP not configured (SMTP_HOST)")
    host = (settings.smtp_host or "").strip()
    port = int(settings.smtp_port or 587)
    user = (settings.smtp_user or "").strip()
    password = (settings.smtp_password or "").strip()
    from_addr = (settings.smtp_from or "noreply@taskminder.app").strip()
    from_name = (settings.smtp_from_name or "").strip()
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{from_name} <{from_addr}>" if from_name else from_addr
    msg["To"] = to
    if text_body:
        msg.attach(MIMEText(text_body, "plain", "utf-8"))
    msg.attach(MIMEText(html_body, "html", "utf-8"))
    try:
        with smtplib.SMTP(host, port, timeout=settings.send_timeout_seconds) as smtp:
            if settings.smtp_use_tls:
                smtp.starttls()
            if user and password:
                smtp.login(user, password)
            smtp.sendmail(from_addr, [to], msg.as_string())
    except (smtplib.SMTPException, OSError) as e:
        raise EmailDeliveryError(f"failed to send e-mail to {to}: {e}") from e
    log.info("Email sent to %s subject=%s", to, subject[:50])


class EmailSender:
    """Reminder e-mails; frontend_url and from_name come from the Settings the pipeline was built with."""

    def __init__(self, frontend_url: str | None = None, from_name: str | None = None):
        self._frontend_url = frontend_url
        self._from_name = from_name

    def send(self, task: Task, address: str) -> None:
        subject, html_body, text_body = build_task_due_email(
            task,
            frontend_url=self._frontend_url,
            from_name=self._from_name,
        )
        send_email(address, subject, html_body, text_body)


def send_test_email(to: str) -> None:
    """Fixed message used by the operator endpoint to check the SMTP setup."""
    send_email(
        to,
        "Test Email from Task Manager",
        "<h1>Test Email</h1><p>Email service is working correctly!</p>",
        "Test Email\n\nEmail service is working correctly!\n",
    )
