"""Resend email client with retry logic."""

import logging
import os
import time
from typing import Optional

import resend
from resend.exceptions import ResendError

from faloclaro.constants import RESEND_FROM_EMAIL

logger = logging.getLogger(__name__)

# Resend status codes worth retrying
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


def mask_api_key(api_key: Optional[str]) -> str:
    if not api_key:
        return "not set"
    return f"{api_key[:7]}...{api_key[-4:]}"


class ResendClient:
    """Client for sending transactional email through Resend."""

    def __init__(
        self,
        api_key: str | None = None,
        from_email: str | None = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        """Initialize Resend client.

        Args:
            api_key: Resend API key (or RESEND_API_KEY env var)
            from_email: Sender, e.g. "FaloClaro <noreply@faloclaro.com>" (or RESEND_FROM_EMAIL env var)
            max_retries: Maximum send attempts for transient failures
            retry_delay: Initial delay between retries in seconds
        """
        self.api_key = api_key or os.getenv("RESEND_API_KEY")
        if not self.api_key:
            raise ValueError(
                "Resend credentials required: RESEND_API_KEY env var or constructor param"
            )
        self.from_email = from_email or RESEND_FROM_EMAIL
        self.max_retries = max_retries
        self.retry_delay = retry_delay

        # Statistics
        self.total_sent = 0
        self.failed_sends = 0

    def send_email(
        self,
        to: str | list[str],
        subject: str,
        html: str,
        text: str | None = None,
        reply_to: str | None = None,
    ) -> tuple[bool, dict]:
        """Send one email.

        Args:
            to: Recipient address or list of addresses
            subject: Subject line
            html: HTML body
            text: Optional plain-text body
            reply_to: Optional Reply-To address

        Returns:
            Tuple of (success, metadata_dict)
            metadata includes: id (on success), error (on failure), attempts
        """
        params: dict = {
            "from": self.from_email,
            "to": to if isinstance(to, list) else [to],
            "subject": subject,
            "html": html,
        }
        if text:
            params["text"] = text
        if reply_to:
            params["reply_to"] = reply_to

        metadata: dict = {"to": params["to"], "subject": subject, "attempts": 0}
        resend.api_key = self.api_key

        for attempt in range(self.max_retries):
            metadata["attempts"] = attempt + 1
            try:
                response = resend.Emails.send(params)
                message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
                metadata["id"] = message_id
                self.total_sent += 1
                logger.info(f"✓ Email sent to {params['to']}: {subject!r} (id={message_id})")
                return True, metadata

            except ResendError as e:
                error_msg = str(e) or e.__class__.__name__
                status = getattr(e, "code", None)
                retryable = status in RETRYABLE_STATUS_CODES
                logger.warning(
                    f"Send failed (attempt {attempt + 1}/{self.max_retries}, code={status}): {error_msg}"
                )
                if retryable and attempt < self.max_retries - 1:
                    delay = self.retry_delay * (2**attempt)
                    logger.info(f"Retrying in {delay:.1f}s...")
                    time.sleep(delay)
                    continue

                self.failed_sends += 1
                logger.error(f"✗ Email to {params['to']} failed: {error_msg}")
                metadata["error"] = error_msg
                return False, metadata

            except Exception as e:
                error_msg = str(e) or e.__class__.__name__
                logger.error(f"Unexpected error sending email: {error_msg}")
                self.failed_sends += 1
                metadata["error"] = error_msg
                return False, metadata

        return False, metadata

    def describe(self) -> dict:
        """Configuration summary without exposing the key."""
        return {
            "configured": True,
            "apiKeyPrefix": mask_api_key(self.api_key),
            "fromEmail": self.from_email,
        }

    def get_statistics(self) -> dict:
        return {
            "total_sent": self.total_sent,
            "failed_sends": self.failed_sends,
        }


def get_resend_client() -> Optional[ResendClient]:
    """Return a client, or None when RESEND_API_KEY is not configured."""
    try:
        return ResendClient()
    except ValueError:
        logger.warning("RESEND_API_KEY is not set; email sending disabled")
        return None
