import logging

from ...core.config import Config
from . import templates


logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised by a provider when a message could not be delivered."""


class EmailService:
    """Common behaviour for the verification email providers.

    Subclasses implement ``is_configured`` and ``_deliver``. Delivery
    problems are reported by returning the fallback decision rather than
    raising, so callers only ever see a boolean.
    """

    provider = "base"

    def is_configured(self) -> bool:
        raise NotImplementedError

    def _deliver(self, email: str, subject: str, html: str, text: str, username: str) -> bool:
        raise NotImplementedError

    def fallback(self, code: str, reason: str) -> bool:
        """Log the code for development and return whether fallback mode is on."""
        allow_fallback = Config.email_fallback_enabled()
        logger.warning(f"[{self.provider}] {reason}. For development, verification code is: {code}")
        return allow_fallback

    def send_verification_email(self, email: str, code: str, username: str = "User") -> bool:
        if not self.is_configured():
            return self.fallback(code, f"{self.provider} is not configured")

        logger.info(f"[{self.provider}] Attempting to send verification email to: {email}")
        try:
            delivered = self._deliver(
                email,
                templates.SUBJECT,
                templates.verification_html(code, username),
                templates.verification_text(code, username),
                username,
            )
        except EmailDeliveryError as e:
            return self.fallback(code, f"Email sending failed: {e}")
        except Exception as e:
            logger.error(f"[{self.provider}] Error sending verification email: {e}", exc_info=True)
            return self.fallback(code, "Email service error")

        if delivered:
            logger.info(f"[{self.provider}] Verification email sent successfully to: {email}")
        return delivered

    def test_configuration(self) -> bool:
        configured = self.is_configured()
        if configured:
            logger.info(f"[{self.provider}] Email service configured")
        else:
            logger.warning(f"[{self.provider}] Email service not configured")
        return configured
