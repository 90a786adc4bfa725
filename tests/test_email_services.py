import smtplib
import socket
from unittest import mock

import pytest
import requests

from carsg.core.config import Config
from carsg.services.email import (
    BrevoEmailService,
    GmailEmailService,
    ResendEmailService,
    get_email_service,
)
from carsg.services.email import templates


def _response(status_code, body=None):
    response = mock.Mock(spec=requests.Response)
    response.status_code = status_code
    response.ok = status_code < 400
    response.url = "https://api.test"
    response.text = str(body)
    response.json.return_value = body if body is not None else {}
    return response


@pytest.fixture
def fallback_on(monkeypatch):
    monkeypatch.setattr(Config, "EMAIL_FALLBACK_MODE", "true")


# -- templates ---------------------------------------------------------------

def test_templates_include_code_and_escape_username():
    html = templates.verification_html("123456", "<script>")
    text = templates.verification_text("123456", "Ana")

    assert "123456" in html
    assert "<script>" not in html
    assert "123456" in text and "Ana" in text


# -- provider selection ------------------------------------------------------

def test_auto_prefers_gmail_then_resend_then_brevo(monkeypatch):
    monkeypatch.setattr(Config, "EMAIL_PROVIDER", "auto")
    monkeypatch.setattr(Config, "GMAIL_USER", "sender@gmail.com")
    monkeypatch.setattr(Config, "GMAIL_APP_PASSWORD", "app-password")
    monkeypatch.setattr(Config, "RESEND_API_KEY", "re_key")
    assert isinstance(get_email_service(), GmailEmailService)

    monkeypatch.setattr(Config, "GMAIL_APP_PASSWORD", "")
    assert isinstance(get_email_service(), ResendEmailService)

    monkeypatch.setattr(Config, "RESEND_API_KEY", "")
    assert isinstance(get_email_service(), BrevoEmailService)


def test_explicit_provider_and_unknown_provider():
    assert isinstance(get_email_service("resend"), ResendEmailService)
    with pytest.raises(ValueError):
        get_email_service("carrier-pigeon")


# -- brevo -------------------------------------------------------------------

def test_brevo_success():
    service = BrevoEmailService(api_key="xkeysib", sender_email="Cars-G <team@cars-g.com>")
    with mock.patch("carsg.core.http.requests.post", return_value=_response(201, {"messageId": "1"})) as post:
        assert service.send_verification_email("driver@example.com", "123456", "Ana") is True

    payload = post.call_args.kwargs["json"]
    assert payload["sender"]["email"] == "team@cars-g.com"
    assert payload["to"] == [{"email": "driver@example.com", "name": "Ana"}]
    assert post.call_args.kwargs["headers"]["api-key"] == "xkeysib"
    assert post.call_args.kwargs["timeout"] == 8


def test_brevo_unconfigured_uses_fallback_flag(fallback_on):
    service = BrevoEmailService(api_key="")
    with mock.patch("carsg.core.http.requests.post") as post:
        assert service.send_verification_email("driver@example.com", "123456") is True
    post.assert_not_called()


def test_brevo_unconfigured_without_fallback_fails():
    assert BrevoEmailService(api_key="your_brevo_api_key_here").send_verification_email("a@b.co", "1") is False


def test_brevo_rate_limit_retries_once():
    service = BrevoEmailService(api_key="xkeysib")
    responses = [_response(429, {"code": "too_many_requests"}), _response(201, {})]
    with mock.patch("carsg.core.http.requests.post", side_effect=responses) as post, \
            mock.patch("carsg.services.email.brevo.time.sleep") as sleep:
        assert service.send_verification_email("driver@example.com", "123456") is True

    sleep.assert_called_once_with(2)
    assert post.call_count == 2
    assert post.call_args.kwargs["timeout"] == 6


def test_brevo_failed_retry_falls_back(fallback_on):
    service = BrevoEmailService(api_key="xkeysib")
    responses = [_response(429, {}), _response(429, {})]
    with mock.patch("carsg.core.http.requests.post", side_effect=responses), \
            mock.patch("carsg.services.email.brevo.time.sleep"):
        assert service.send_verification_email("driver@example.com", "123456") is True


@pytest.mark.parametrize("status,body", [
    (401, {"code": "unauthorized", "message": "Key not found"}),
    (403, {"code": "permission_denied", "message": "SMTP account is not yet activated"}),
    (500, {"message": "boom"}),
])
def test_brevo_errors_without_fallback_return_false(status, body):
    service = BrevoEmailService(api_key="xkeysib")
    with mock.patch("carsg.core.http.requests.post", return_value=_response(status, body)):
        assert service.send_verification_email("driver@example.com", "123456") is False


def test_brevo_timeout_falls_back(fallback_on):
    service = BrevoEmailService(api_key="xkeysib")
    with mock.patch("carsg.core.http.requests.post", side_effect=requests.Timeout()):
        assert service.send_verification_email("driver@example.com", "123456") is True


# -- resend ------------------------------------------------------------------

def test_resend_success():
    service = ResendEmailService(api_key="re_key", from_email="Cars-G <noreply@cars-g.com>")
    with mock.patch("carsg.core.http.requests.post", return_value=_response(200, {"id": "email-1"})) as post:
        assert service.send_verification_email("driver@example.com", "654321") is True

    assert post.call_args.kwargs["headers"]["Authorization"] == "Bearer re_key"
    assert post.call_args.kwargs["json"]["to"] == ["driver@example.com"]


def test_resend_http_error_returns_false(fallback_on):
    service = ResendEmailService(api_key="re_key")
    with mock.patch("carsg.core.http.requests.post", return_value=_response(422, {"message": "bad"})):
        assert service.send_verification_email("driver@example.com", "654321") is False


def test_resend_timeout_uses_fallback_flag():
    service = ResendEmailService(api_key="re_key")
    with mock.patch("carsg.core.http.requests.post", side_effect=requests.Timeout()):
        assert service.send_verification_email("driver@example.com", "654321") is False


# -- gmail -------------------------------------------------------------------

def test_gmail_sends_multipart_message():
    service = GmailEmailService(user="sender@gmail.com", app_password="app-password")
    with mock.patch("carsg.services.email.gmail.smtplib.SMTP_SSL") as smtp_cls:
        server = smtp_cls.return_value.__enter__.return_value
        assert service.send_verification_email("driver@example.com", "111222", "Ana") is True

    server.login.assert_called_once_with("sender@gmail.com", "app-password")
    message = server.send_message.call_args.args[0]
    assert message["To"] == "driver@example.com"
    assert message.is_multipart()
    assert smtp_cls.call_args.kwargs["timeout"] == 5


def test_gmail_uses_shorter_timeout_in_production(monkeypatch):
    monkeypatch.setattr(Config, "ENVIRONMENT", "production")
    assert GmailEmailService(user="u@gmail.com", app_password="p").timeout_seconds == 3


def test_gmail_timeout_falls_back(fallback_on):
    service = GmailEmailService(user="sender@gmail.com", app_password="app-password")
    with mock.patch("carsg.services.email.gmail.smtplib.SMTP_SSL", side_effect=socket.timeout()):
        assert service.send_verification_email("driver@example.com", "111222") is True


def test_gmail_auth_error_without_fallback():
    service = GmailEmailService(user="sender@gmail.com", app_password="wrong")
    with mock.patch("carsg.services.email.gmail.smtplib.SMTP_SSL") as smtp_cls:
        server = smtp_cls.return_value.__enter__.return_value
        server.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        assert service.send_verification_email("driver@example.com", "111222") is False


def test_gmail_test_configuration_without_credentials():
    assert GmailEmailService(user="", app_password="").test_configuration() is False
