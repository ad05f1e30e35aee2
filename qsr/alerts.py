from __future__ import annotations

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from .models import PassResult, safe_text
from .settings import Settings


def _smtp_ready(settings: Settings) -> bool:
    required = (
        settings.smtp_host,
        settings.smtp_port,
        settings.smtp_user,
        settings.smtp_password,
        settings.email_from,
        settings.email_to,
    )
    return settings.enable_email and all(required)


def format_pass_alert(settings: Settings, result: PassResult) -> tuple[str, str]:
    """Subject and body for a pass whose outcome differs from the previous one."""
    state = "RECOVERED" if result.ok else "FAILED"
    subject = f"{state}: reconciliation on {safe_text(settings.source_root)}"

    lines = [
        f"Trigger: {result.trigger}",
        f"Started: {result.started_at}",
        f"Finished: {result.finished_at or '-'}",
        f"Status: {'OK' if result.ok else 'FAILED'}",
        f"Detail: {result.summary()}",
    ]
    if result.error:
        lines.append(f"Error: {result.error}")
    if result.reload_failed and result.reload is not None:
        lines.append(f"daemon-reload: {result.reload.detail or result.reload.outcome.value}")
    for name, detail in sorted(result.failures.items()):
        lines.append(f"  link {safe_text(name)}: {safe_text(detail)}")
    for name, detail in sorted(result.start_failures.items()):
        lines.append(f"  start {safe_text(name)}: {safe_text(detail)}")
    return subject, "\n".join(lines)


def send_email(settings: Settings, subject: str, body: str) -> bool:
    """Send an email if SMTP settings are configured.

    Environment variables:
      - QSR_ENABLE_EMAIL=true
      - QSR_SMTP_HOST / QSR_SMTP_PORT
      - QSR_SMTP_USER / QSR_SMTP_PASSWORD
      - QSR_EMAIL_FROM / QSR_EMAIL_TO
    """
    if not _smtp_ready(settings):
        return False

    msg = MIMEMultipart()
    msg["From"] = settings.email_from
    msg["To"] = settings.email_to
    msg["Subject"] = subject
    msg.attach(MIMEText(body, "plain"))

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as server:
            server.starttls()
            server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.email_from, [settings.email_to], msg.as_string())
    except (smtplib.SMTPException, OSError):
        return False
    return True


def notify_pass(settings: Settings, result: PassResult) -> bool:
    if not settings.enable_email:
        return False
    subject, body = format_pass_alert(settings, result)
    return send_email(settings, subject, body)
