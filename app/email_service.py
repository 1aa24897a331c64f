"""
SMTP Email Service
Sends notification emails through the SMTP server configured in Settings → Email,
rendering the branded layout from MJML
"""

import asyncio
import logging
import re
import smtplib
import socket
import ssl
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Optional, Union

from mjml import mjml_to_html
from sqlalchemy.orm import Session

from .email_templates import branded_email_template, resolve_logo_url
from .services.settings_service import get_app_base_url, get_setting, resolve_config

logger = logging.getLogger(__name__)

SMTP_SETTING_KEYS = {
    "host": "SMTP_HOST",
    "port": "SMTP_PORT",
    "user": "SMTP_USER",
    "password": "SMTP_PASSWORD",
    "from": "SMTP_FROM",
    "emailEnabled": "EMAIL_ENABLED",
}

SMTP_TIMEOUT = 30
MAX_ATTEMPTS = 3
RETRY_DELAYS = [2, 5, 10]

TIMEOUT_MESSAGE = (
    "SMTP timeout: The email server took too long to respond. This could be due to network "
    "issues or server overload. Please try again later or check your SMTP settings."
)
AUTH_MESSAGE = "SMTP authentication failed: Please check your SMTP username and password."


class SMTPConfigurationError(Exception):
    """Raised when SMTP host, user or password is missing"""


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        if isinstance(result, dict):
            if result.get("errors"):
                logger.warning(f"MJML compilation warnings: {result['errors']}")
            return result.get("html", "")
        if hasattr(result, "html"):
            return result.html
        return str(result)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise Exception(f"Failed to compile MJML template: {str(e)}") from e


def render_branded_email(
    db: Session,
    content: str,
    title: str = "HostHub Notification",
    action_url: Optional[str] = None,
    action_text: Optional[str] = None,
    greeting: Optional[str] = None,
) -> str:
    """Wrap content in the branded layout with the configured logo"""
    base_url = get_app_base_url(db)
    logo_url = resolve_logo_url(get_setting(db, "APP_LOGO"), base_url)
    mjml_content = branded_email_template(
        content,
        logo_url=logo_url,
        title=title,
        greeting=greeting,
        action_url=action_url,
        action_text=action_text,
    )
    return compile_mjml_to_html(mjml_content)


def strip_html(html: str) -> str:
    return re.sub(r"<[^>]*>", "", html).replace("&nbsp;", " ").strip()


def _is_timeout_error(error: Exception) -> bool:
    if isinstance(error, (socket.timeout, TimeoutError, ConnectionResetError)):
        return True
    message = str(error)
    return "timeout" in message.lower() or "ETIMEDOUT" in message or "ECONNRESET" in message


def _friendly_error(error: Exception, host: str, port: int) -> str:
    if _is_timeout_error(error):
        return TIMEOUT_MESSAGE
    if isinstance(error, ConnectionRefusedError):
        return (
            f"SMTP connection refused: Unable to connect to {host}:{port}. "
            "Please check your SMTP host and port settings."
        )
    if isinstance(error, smtplib.SMTPAuthenticationError):
        return AUTH_MESSAGE
    return str(error) or "Failed to send email"


def _deliver(host: str, port: int, user: str, password: str, from_address: str, recipients: list[str], msg) -> None:
    if port == 465:
        context = ssl.create_default_context()
        server = smtplib.SMTP_SSL(host, port, context=context, timeout=SMTP_TIMEOUT)
    else:
        server = smtplib.SMTP(host, port, timeout=SMTP_TIMEOUT)
        server.starttls(context=ssl.create_default_context())
    try:
        server.login(user, password)
        server.sendmail(from_address.split("<")[-1].rstrip(">"), recipients, msg.as_string())
    finally:
        try:
            server.quit()
        except smtplib.SMTPException:
            pass


async def send_email(
    db: Session,
    to: Union[str, list[str]],
    subject: str,
    html: str,
    text: Optional[str] = None,
    from_address: Optional[str] = None,
    config: Optional[dict] = None,
) -> dict:
    """
    Send an email via the configured SMTP server.
    Timeout-class failures are retried up to 3 attempts (2s, 5s, 10s apart).

    Returns:
        {"success": True, "messageId": str} or {"success": False, "error": str}

    Raises:
        SMTPConfigurationError: host, user or password not configured
    """
    resolved = resolve_config(db, SMTP_SETTING_KEYS, config)

    enabled = resolved.get("emailEnabled")
    if enabled is not None and not isinstance(enabled, bool):
        enabled = str(enabled) == "true"
    if enabled is False:
        return {"success": False, "error": "Email notifications are disabled"}

    host = resolved.get("host")
    user = resolved.get("user")
    password = resolved.get("password")
    if not host or not user or not password:
        raise SMTPConfigurationError("SMTP configuration is incomplete. Please configure SMTP settings")

    port = int(resolved.get("port") or 587)
    sender = from_address or resolved.get("from") or user
    recipients = [to] if isinstance(to, str) else list(to)

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = ", ".join(recipients)
    message_id = make_msgid(domain=sender.split("@")[-1].rstrip(">") if "@" in sender else None)
    msg["Message-ID"] = message_id
    msg.attach(MIMEText(text or strip_html(html), "plain"))
    msg.attach(MIMEText(html, "html"))

    last_error: Optional[Exception] = None
    for attempt in range(MAX_ATTEMPTS):
        try:
            await asyncio.to_thread(_deliver, host, port, user, password, sender, recipients, msg)
            logger.info(f"📧 Email sent to {', '.join(recipients)} via {host} (attempt {attempt + 1})")
            return {"success": True, "messageId": message_id}
        except Exception as e:
            last_error = e
            if _is_timeout_error(e) and attempt < MAX_ATTEMPTS - 1:
                delay = RETRY_DELAYS[attempt]
                logger.warning(f"⚠️ SMTP timeout on attempt {attempt + 1}, retrying in {delay}s: {e}")
                await asyncio.sleep(delay)
                continue
            break

    error_message = _friendly_error(last_error, host, port)
    logger.error(f"❌ Email sending failed at {datetime.utcnow().isoformat()}: {error_message}")
    return {"success": False, "error": error_message}
