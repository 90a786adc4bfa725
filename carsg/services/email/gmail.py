import logging
import smtplib
import socket
import ssl
from email.message import EmailMessage

from ...core.config import Config
from .base import EmailDeliveryError, EmailService


logger = logging.getLogger(__name__)

SMTP_HOST = "smtp.gmail.com"
SMTP_PORT = 465
PLACEHOLDER_USER = "your_gmail_user_here"


class GmailEmailService(EmailService):
    """Verification email over Gmail SMTP with an app password."""

    provider = "gmail"

    def __init__(self, user: str | None = None, app_password: str | None = None):
        self.gmail_user = user if user is not None else Config.GMAIL_USER
        self.gmail_app_password = app_password if app_password is not None else Config.GMAIL_APP_PASSWORD
        if not self.gmail_user or not self.gmail_app_password:
            logger.warning("Gmail credentials not set - using fallback mode")

    @property
    def timeout_seconds(self) -> int:
        return 3 if Config.is_production() else 5

    def is_configured(self) -> bool:
        return bool(self.gmail_user and self.gmail_app_password) and self.gmail_user != PLACEHOLDER_USER

    def _connect(self) -> smtplib.SMTP_SSL:
        return smtplib.SMTP_SSL(
            SMTP_HOST,
            SMTP_PORT,
            timeout=self.timeout_seconds,
            context=ssl.create_default_context(),
        )

    def _deliver(self, email: str, subject: str, html: str, text: str, username: str) -> bool:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = f'"Cars-G" <{self.gmail_user}>'
        message["To"] = email
        message.set_content(text)
        message.add_alternative(html, subtype="html")

        try:
            with self._connect() as server:
                server.login(self.gmail_user, self.gmail_app_password)
                server.send_message(message)
        except (socket.timeout, TimeoutError) as e:
            raise EmailDeliveryError("Gmail send timeout") from e
        except smtplib.SMTPException as e:
            raise EmailDeliveryError(f"Gmail sending failed: {e}") from e
        return True

    def test_configuration(self) -> bool:
        if not self.is_configured():
            logger.warning("Gmail credentials not configured. Set GMAIL_USER and GMAIL_APP_PASSWORD")
            return False
        try:
            with self._connect() as server:
                server.login(self.gmail_user, self.gmail_app_password)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Error testing Gmail configuration: {e}")
            return False
        logger.info(f"Gmail email service configured and ready (user: {self.gmail_user})")
        return True
