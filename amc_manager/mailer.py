"""
amc_manager/mailer.py

Outgoing e-mail over SMTP (password reset messages).

Delivery is disabled when MAIL_SERVER is empty: the message is logged and
send_email() returns False. Callers never expose delivery failures to clients.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

from flask import current_app

logger = logging.getLogger(__name__)


def build_message(to: str, subject: str, body: str) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = current_app.config.get("MAIL_DEFAULT_SENDER")
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(body)
    return msg


def send_email(to: str, subject: str, body: str) -> bool:
    """Send a plain-text e-mail. Returns True if the SMTP server accepted it."""
    cfg = current_app.config
    server_host = (cfg.get("MAIL_SERVER") or "").strip()

    if not server_host:
        logger.warning("Mail not configured (MAIL_SERVER empty); skipping message to %s: %s", to, subject)
        return False

    msg = build_message(to, subject, body)

    try:
        with smtplib.SMTP(server_host, int(cfg.get("MAIL_PORT") or 25), timeout=15) as server:
            if cfg.get("MAIL_USE_TLS"):
                server.starttls()
            username = (cfg.get("MAIL_USERNAME") or "").strip()
            password = cfg.get("MAIL_PASSWORD") or ""
            if username and password:
                server.login(username, password)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Failed to send e-mail to %s (%s): %s", to, subject, e)
        return False

    logger.info("Sent e-mail to %s: %s", to, subject)
    return True


def send_password_reset_email(user, token: str) -> bool:
    cfg = current_app.config
    reset_url = f"{cfg['FRONTEND_URL'].rstrip('/')}/reset-password?token={token}"
    minutes = cfg.get("PASSWORD_RESET_EXPIRES_MINUTES", 60)

    body = (
        f"Hello {user.name},\n\n"
        f"A password reset was requested for your {cfg.get('APP_NAME', 'AMC Manager')} account.\n"
        f"Open the link below to choose a new password. It expires in {minutes} minutes.\n\n"
        f"{reset_url}\n\n"
        "If you did not request this, you can ignore this message.\n"
    )
    return send_email(user.email, "Password reset instructions", body)
