# Copyright (C) 2024 TOOF Foundation Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Email sending service. Brevo API, then SMTP; logs when neither is configured.

Delivery is best effort: failures are logged and reported as False, never raised.
"""

import asyncio
import html
import logging
import smtplib
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import httpx

from toof_server.config import settings

logger = logging.getLogger(__name__)


def wrap_body_html(heading: str, body_html: str) -> str:
    """Branded HTML shell shared by transactional emails."""
    year = datetime.now(timezone.utc).year
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
<div style="max-width: 600px; margin: 0 auto; padding: 20px;">
<div style="background: #16a34a; color: white; padding: 20px; text-align: center;"><h1>TOOF Foundation</h1></div>
<div style="padding: 30px; background: #f9f9f9;">
<h2>{html.escape(heading)}</h2>
{body_html}
</div>
<div style="padding: 20px; text-align: center; color: #666; font-size: 12px;">
<p>&copy; {year} The Olanike Omopariola Foundation. All rights reserved.</p>
</div>
</div>
</body>
</html>"""


def build_reset_email(secret: str) -> tuple[str, str, str]:
    """Subject, plain text and HTML for a reset code or reset link."""
    if settings.reset_flow == "token":
        base = settings.app_base_url.rstrip("/")
        link = f"{base}/reset-password?token={secret}"
        minutes = settings.reset_token_expire_minutes
        text = (
            "We received a request to reset your password.\n\n"
            f"Open this link to choose a new password:\n\n{link}\n\n"
            f"This link will expire in {minutes} minutes.\n\n"
            "If you didn't request this password reset, you can safely ignore this email."
        )
        body = (
            "<p>We received a request to reset your password.</p>"
            f'<p><a href="{html.escape(link)}">Reset your password</a></p>'
            f"<p><strong>This link will expire in {minutes} minutes.</strong></p>"
            "<p>If you didn't request this password reset, you can safely ignore this email.</p>"
        )
        return "Reset your password - TOOF Foundation", text, wrap_body_html("Password Reset", body)

    minutes = settings.reset_code_expire_minutes
    text = (
        "We received a request to reset your password.\n\n"
        f"Your password reset code is: {secret}\n\n"
        f"This code will expire in {minutes} minutes.\n\n"
        "If you didn't request this password reset, you can safely ignore this email."
    )
    body = (
        "<p>We received a request to reset your password. Use the code below to reset your password:</p>"
        '<div style="background: #16a34a; color: white; font-size: 32px; font-weight: bold; '
        'letter-spacing: 8px; padding: 20px 30px; text-align: center; border-radius: 10px; margin: 25px 0;">'
        f"{html.escape(secret)}</div>"
        f"<p><strong>This code will expire in {minutes} minutes.</strong></p>"
        "<p>If you didn't request this password reset, you can safely ignore this email.</p>"
    )
    return "Your Password Reset Code - TOOF Foundation", text, wrap_body_html("Password Reset Code", body)


async def _send_brevo(to: str, subject: str, text: str, html_body: str) -> bool:
    payload = {
        "sender": {"name": settings.mail_sender_name, "email": settings.mail_sender_email},
        "to": [{"email": to}],
        "subject": subject,
        "htmlContent": html_body,
        "textContent": text,
    }
    headers = {
        "Accept": "application/json",
        "Content-Type": "application/json",
        "api-key": settings.brevo_api_key or "",
    }
    try:
        async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
            response = await client.post(settings.brevo_api_url, json=payload, headers=headers)
    except httpx.HTTPError as e:
        logger.warning("Brevo request failed: %s", e)
        return False
    if response.status_code >= 400:
        logger.warning("Brevo API error %s: %s", response.status_code, response.text[:200])
        return False
    return True


def _send_smtp(to: str, subject: str, text: str, html_body: str) -> None:
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = settings.mail_sender_email
    msg["To"] = to
    msg.attach(MIMEText(text, "plain"))
    msg.attach(MIMEText(html_body, "html"))
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=settings.http_timeout_seconds) as server:
        server.starttls()
        server.login(settings.smtp_user, settings.smtp_password or "")
        server.sendmail(settings.mail_sender_email, [to], msg.as_string())


async def send_email(to: str, subject: str, text: str, html_body: str) -> bool:
    """Send one email. Returns True when a transport accepted it."""
    if settings.brevo_api_key:
        return await _send_brevo(to, subject, text, html_body)
    if settings.smtp_host and settings.smtp_user:
        try:
            await asyncio.to_thread(_send_smtp, to, subject, text, html_body)
        except (smtplib.SMTPException, OSError) as e:
            logger.exception("Failed to send email: %s", e)
            return False
        return True
    logger.info("Email (no transport configured): To=%s Subject=%s", to, subject)
    return False


async def send_reset_code(email: str, secret: str) -> bool:
    """Deliver a reset code or link. The secret itself is never logged."""
    subject, text, html_body = build_reset_email(secret)
    sent = await send_email(email, subject, text, html_body)
    if sent:
        logger.info("Password reset email sent to %s", email)
    else:
        logger.warning("Password reset email not delivered to %s", email)
    return sent
