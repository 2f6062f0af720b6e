"""Site contact form and Resend diagnostics."""

import logging
import os
from typing import Optional

from faloclaro.constants import RESEND_CONTACT_TO, RESEND_FROM_EMAIL
from faloclaro.services.email_engine import escape_html
from faloclaro.services.errors import ConfigurationError, ServiceError
from faloclaro.utils.resend_client import ResendClient, get_resend_client, mask_api_key

logger = logging.getLogger(__name__)

MAX_EMAIL_LENGTH = 320
MIN_MESSAGE_LENGTH = 3

TEST_EMAIL_SUBJECT = "Test Email from FaloClaro"
TEST_EMAIL_HTML = """
<div style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h1 style="color: #2563eb;">✅ Resend работает!</h1>
  <p>Это тестовое письмо от FaloClaro.</p>
  <p>Если вы получили это письмо, значит:</p>
  <ul>
    <li>✅ Resend API ключ настроен правильно</li>
    <li>✅ Домен faloclaro.com верифицирован</li>
    <li>✅ DNS записи настроены корректно</li>
  </ul>
  <p style="color: #999; font-size: 12px; margin-top: 30px;">FaloClaro - Изучайте португальский язык</p>
</div>
"""
TEST_EMAIL_TEXT = (
    "✅ Resend работает!\n\nЭто тестовое письмо от FaloClaro.\n\n"
    "Если вы получили это письмо, значит:\n"
    "- Resend API ключ настроен правильно\n"
    "- Домен faloclaro.com верифицирован\n"
    "- DNS записи настроены корректно\n"
)


def is_valid_contact_email(email: str) -> bool:
    return bool(email) and "@" in email and "." in email and len(email) <= MAX_EMAIL_LENGTH


def _require_client(client: Optional[ResendClient], message: str) -> ResendClient:
    client = client or get_resend_client()
    if client is None:
        raise ConfigurationError(message)
    return client


def send_contact_message(
    email: Optional[str],
    message: Optional[str],
    lang: Optional[str] = None,
    client: Optional[ResendClient] = None,
    to: Optional[str] = None,
) -> None:
    """Forward a website message to the team inbox with Reply-To set to the sender.

    Raises:
        ServiceError: Invalid email or message (400), delivery failure (500)
        ConfigurationError: Resend or the contact inbox is not configured
    """
    email = (email or "").strip()
    message = (message or "").strip()
    lang = (lang or "").strip()
    if not is_valid_contact_email(email):
        raise ServiceError("Valid email is required")
    if len(message) < MIN_MESSAGE_LENGTH:
        raise ServiceError("Message is required")

    client = _require_client(client, "RESEND_API_KEY is not configured")
    to = to or RESEND_CONTACT_TO
    if not to:
        raise ConfigurationError("RESEND_CONTACT_TO is not configured")

    subject = f"FaloClaro website message{f' ({lang})' if lang else ''}"
    text = f"New message from faloclaro.com\n\nFrom: {email}\nLanguage: {lang or '-'}\n\n{message}\n"
    html = (
        '<div style="font-family: Arial, sans-serif; line-height: 1.5;">'
        '<h2 style="margin: 0 0 12px 0;">New message from faloclaro.com</h2>'
        f'<div style="margin: 0 0 12px 0;"><b>From:</b> {escape_html(email)}</div>'
        f'<div style="margin: 0 0 18px 0;"><b>Language:</b> {escape_html(lang or "-")}</div>'
        '<div style="white-space: pre-line; border: 1px solid #e5e7eb; border-radius: 12px; padding: 12px;">'
        f"{escape_html(message)}</div></div>"
    )
    success, metadata = client.send_email(to=to, subject=subject, html=html, text=text, reply_to=email)
    if not success:
        raise ServiceError(metadata.get("error") or "Failed to send", 500)
    logger.info(f"✓ Contact message from {email} forwarded")


def resend_status() -> dict:
    """Configuration report for the Resend integration."""
    api_key = os.getenv("RESEND_API_KEY")
    initialized, error = False, None
    if api_key:
        try:
            ResendClient(api_key=api_key)
            initialized = True
        except ValueError as e:
            error = str(e)

    if not api_key:
        message = "RESEND_API_KEY is not set. Please add it to environment variables."
    elif initialized:
        message = "Resend is configured and initialized correctly. Check logs for email sending details."
    else:
        message = f"Resend key exists but initialization failed: {error}"

    return {
        "configured": bool(api_key),
        "apiKeyPrefix": mask_api_key(api_key),
        "fromEmail": RESEND_FROM_EMAIL,
        "resendInitialized": initialized,
        "resendError": error,
        "message": message,
        "instructions": [
            "1. Ensure RESEND_API_KEY is set for the production environment",
            "2. Verify the sending domain in the Resend dashboard: https://resend.com/domains",
            "3. Check Resend logs: https://resend.com/emails",
        ],
    }


def send_resend_test(email: Optional[str], client: Optional[ResendClient] = None) -> dict:
    """Send a fixed test message to check delivery end to end.

    Raises:
        ServiceError: Missing email (400), delivery failure (500)
        ConfigurationError: Resend is not configured
    """
    if not email:
        raise ServiceError("Email is required")
    client = _require_client(client, "RESEND_API_KEY not configured")

    success, metadata = client.send_email(
        to=email, subject=TEST_EMAIL_SUBJECT, html=TEST_EMAIL_HTML, text=TEST_EMAIL_TEXT
    )
    if not success:
        raise ServiceError("Failed to send email", 500, details=metadata.get("error"))
    return {
        "success": True,
        "message": "Test email sent successfully",
        "emailId": metadata.get("id"),
        "to": email,
        "from": client.from_email,
    }
