import logging
import time

import requests

from ...core.config import Config
from ...core.http import post_json, response_json
from .base import EmailDeliveryError, EmailService


logger = logging.getLogger(__name__)

DEFAULT_SENDER = "noreply@cars-g.com"
PLACEHOLDER_KEY = "your_brevo_api_key_here"


def sender_address(sender: str) -> str:
    """Extract the bare address from ``Name <addr>`` or return it unchanged."""
    if "<" in sender and ">" in sender:
        return sender.split("<", 1)[1].split(">", 1)[0].strip()
    return sender.strip()


class BrevoEmailService(EmailService):
    """Transactional email through the Brevo HTTP API."""

    provider = "brevo"
    api_url = "https://api.brevo.com/v3/smtp/email"
    timeout_seconds = 8
    retry_timeout_seconds = 6
    retry_delay_seconds = 2

    def __init__(self, api_key: str | None = None, sender_email: str | None = None):
        self.api_key = api_key if api_key is not None else Config.BREVO_API_KEY
        self.sender_email = sender_email if sender_email is not None else Config.BREVO_SENDER_EMAIL
        if not self.api_key:
            logger.warning("BREVO_API_KEY not set - Brevo email delivery will not work")
        if not self.sender_email:
            self.sender_email = f"Cars-G <{DEFAULT_SENDER}>"

    def is_configured(self) -> bool:
        return bool(self.api_key) and self.api_key != PLACEHOLDER_KEY

    def _post(self, payload: dict, timeout_seconds: float) -> requests.Response:
        try:
            return post_json(
                self.api_url,
                payload,
                headers={"api-key": self.api_key},
                timeout_seconds=timeout_seconds,
            )
        except requests.Timeout as e:
            raise EmailDeliveryError("Brevo request timed out") from e

    def _deliver(self, email: str, subject: str, html: str, text: str, username: str) -> bool:
        payload = {
            "sender": {"name": "Cars-G", "email": sender_address(self.sender_email)},
            "to": [{"email": email, "name": username}],
            "subject": subject,
            "htmlContent": html,
            "textContent": text,
        }

        response = self._post(payload, self.timeout_seconds)
        if response.ok:
            return True

        error_data = response_json(response)
        error_code = error_data.get("code")
        message = str(error_data.get("message") or "")
        logger.warning(f"Brevo email send failed: {response.status_code} {error_data}")

        if error_code == "permission_denied" and "SMTP account is not yet activated" in message:
            raise EmailDeliveryError("SMTP account not activated; contact contact@brevo.com")

        if error_code == "unauthorized" or response.status_code == 401:
            raise EmailDeliveryError("Invalid Brevo API key")

        if response.status_code == 429:
            logger.info(f"Brevo rate limited, waiting {self.retry_delay_seconds} seconds before retry...")
            time.sleep(self.retry_delay_seconds)
            retry_response = self._post(payload, self.retry_timeout_seconds)
            if retry_response.ok:
                logger.info(f"Verification email sent successfully on retry to: {email}")
                return True
            raise EmailDeliveryError(f"Retry failed with HTTP {retry_response.status_code}")

        raise EmailDeliveryError(f"HTTP {response.status_code}")
