"""Verification email delivery with interchangeable providers."""

import logging

from ...core.config import Config
from .base import EmailDeliveryError, EmailService
from .brevo import BrevoEmailService
from .gmail import GmailEmailService
from .resend import ResendEmailService


logger = logging.getLogger(__name__)

PROVIDERS = {
    "brevo": BrevoEmailService,
    "gmail": GmailEmailService,
    "resend": ResendEmailService,
}


def get_email_service(provider: str | None = None) -> EmailService:
    """Return the provider named by ``EMAIL_PROVIDER``.

    ``auto`` prefers Gmail when its credentials are present, then Resend,
    then Brevo.
    """
    name = (provider or Config.EMAIL_PROVIDER or "auto").strip().lower()
    if name == "auto":
        if Config.GMAIL_USER and Config.GMAIL_APP_PASSWORD:
            name = "gmail"
        elif Config.RESEND_API_KEY:
            name = "resend"
        else:
            name = "brevo"

    service_cls = PROVIDERS.get(name)
    if service_cls is None:
        raise ValueError(f"Unknown email provider: {name}")
    return service_cls()


__all__ = [
    "BrevoEmailService",
    "EmailDeliveryError",
    "EmailService",
    "GmailEmailService",
    "ResendEmailService",
    "get_email_service",
]
