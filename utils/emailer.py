import logging
import smtplib
from email.message import EmailMessage

from flask import current_app

logger = logging.getLogger(__name__)


def _smtp_settings():
    cfg = current_app.config
    return {
        "host": cfg.get("SMTP_HOST"),
        "port": int(cfg.get("SMTP_PORT") or 587),
        "username": cfg.get("SMTP_USERNAME"),
        "password": cfg.get("SMTP_PASSWORD"),
        "sender": cfg.get("SMTP_FROM_EMAIL") or cfg.get("SMTP_USERNAME"),
        "tls": cfg.get("SMTP_USE_TLS", True),
    }


def build_message(sender: str, to_email: str, subject: str, body: str) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)
    return msg


def send_email(to_email: str, subject: str, body: str):
    """Send a plain-text email. Returns (sent, error) and never raises."""
    smtp = _smtp_settings()
    if not smtp["host"] or not smtp["sender"]:
        return False, "Email not configured"
    if not to_email:
        return False, "No recipient"

    msg = build_message(smtp["sender"], to_email, subject, body)
    try:
        with smtplib.SMTP(smtp["host"], smtp["port"], timeout=10) as server:
            if smtp["tls"]:
                server.starttls()
            if smtp["username"] and smtp["password"]:
                server.login(smtp["username"], smtp["password"])
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning("Email to %s failed: %s", to_email, exc)
        return False, str(exc)
    return True, None
