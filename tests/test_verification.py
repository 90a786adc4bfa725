from datetime import datetime, timedelta, timezone
from unittest import mock

import pytest
from fastapi import HTTPException

from carsg.services import verification


def _service(delivered=True):
    service = mock.Mock()
    service.send_verification_email.return_value = delivered
    return service


def test_generated_codes_are_six_digits():
    for _ in range(50):
        code = verification.generate_verification_code()
        assert len(code) == 6 and code.isdigit()


def test_send_verification_replaces_pending_codes(fake_db):
    fake_db.rows("email_verifications").append({
        "id": "old", "email": "driver@example.com", "code": "000000",
        "expires_at": "2099-01-01T00:00:00+00:00", "verified_at": None,
    })
    service = _service()

    result = verification.send_verification(" Driver@Example.com ", "Ana", email_service=service)

    rows = fake_db.rows("email_verifications")
    assert result["success"] is True
    assert len(rows) == 1 and rows[0]["id"] != "old"
    service.send_verification_email.assert_called_once_with("driver@example.com", rows[0]["code"], "Ana")


def test_send_verification_delivery_failure_is_500(fake_db):
    with pytest.raises(HTTPException) as excinfo:
        verification.send_verification("driver@example.com", email_service=_service(False))
    assert excinfo.value.status_code == 500


def test_send_verification_rejects_bad_email(fake_db):
    with pytest.raises(HTTPException) as excinfo:
        verification.send_verification("not-an-email", email_service=_service())
    assert excinfo.value.status_code == 400


def test_verify_email_marks_code_and_profile(fake_db):
    fake_db.rows("profiles").append({"id": "user-1", "email": "driver@example.com", "email_verified": False})
    verification.send_verification("driver@example.com", email_service=_service())
    code = fake_db.rows("email_verifications")[0]["code"]

    result = verification.verify_email("driver@example.com", code)

    assert result["success"] is True
    assert fake_db.rows("email_verifications")[0]["verified_at"] is not None
    assert fake_db.rows("profiles")[0]["email_verified"] is True


def test_verify_email_rejects_wrong_code(fake_db):
    verification.send_verification("driver@example.com", email_service=_service())
    code = fake_db.rows("email_verifications")[0]["code"]
    wrong = "111111" if code != "111111" else "222222"

    with pytest.raises(HTTPException) as excinfo:
        verification.verify_email("driver@example.com", wrong)
    assert excinfo.value.status_code == 400


def test_verify_email_rejects_expired_code(fake_db):
    past = (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat()
    fake_db.rows("email_verifications").append({
        "id": "v1", "email": "driver@example.com", "code": "123456", "expires_at": past, "verified_at": None,
    })
    with pytest.raises(HTTPException) as excinfo:
        verification.verify_email("driver@example.com", "123456")
    assert excinfo.value.detail == "Invalid or expired verification code"


def test_code_cannot_be_used_twice(fake_db):
    verification.send_verification("driver@example.com", email_service=_service())
    code = fake_db.rows("email_verifications")[0]["code"]
    verification.verify_email("driver@example.com", code)

    with pytest.raises(HTTPException):
        verification.verify_email("driver@example.com", code)


def test_cleanup_expired_verifications(fake_db):
    past = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()
    future = (datetime.now(timezone.utc) + timedelta(hours=1)).isoformat()
    fake_db.rows("email_verifications").extend([
        {"id": "a", "email": "a@example.com", "code": "1", "expires_at": past, "verified_at": None},
        {"id": "b", "email": "b@example.com", "code": "2", "expires_at": future, "verified_at": None},
    ])

    assert verification.cleanup_expired_verifications() == 1
    assert [row["id"] for row in fake_db.rows("email_verifications")] == ["b"]


def test_send_verification_route_uses_configured_provider(client, fake_db):
    with mock.patch.object(verification, "get_email_service", return_value=_service()):
        response = client.post("/api/auth/send-verification", json={"email": "driver@example.com"})

    assert response.status_code == 200
    assert response.json()["success"] is True
