import logging

import requests

from ...core.config import Config
from ...core.http import post_json, response_json
from .base import EmailDeliveryError, EmailService


logger = logging.getLogger(__name__)


class ResendEmailService(EmailService):
    """Verification email through the Resend HTTP API."""

    provider = "resend"
    api_url = "https://api.resend.com/emails"
    timeout_seconds = 15

    def __init__(self, api_key: str | None = None, from_email: str | None = None):
        self.api_key = api_key if api_key is not None else Config.RESEND_API_KEY
        self.from_email = from_email or Config.RESEND_FROM_EMAIL
        if not self.api_key:
            logger.warning("RESEND_API_KEY not set - Resend email delivery will not work")

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _deliver(self, email: str, subject: str, html: str, text: str, username: str) -> bool:
        payload = {
            "from": self.from_email,
            "to": [email],
            "subject": subject,
            "html": html,
            "text": text,
        }
        try:
            response = post_json(
                self.api_url,
                payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout_seconds=self.timeout_seconds,
            )
        except requests.Timeout as e:
            raise EmailDeliveryError("Resend request timed out") from e

        if not response.ok:
            logger.error(f"Resend email send failed: {response.status_code} {response_json(response)}")
            return False

        logger.info(f"Resend email id: {response_json(response).get('id')}")
        return True
