from unittest import mock

import pytest
import requests
from fastapi import HTTPException

from carsg.core.lazy import loader
from carsg.services import push


def _response(status_code, body=None):
    response = mock.Mock(spec=requests.Response)
    response.status_code = status_code
    response.ok = status_code < 400
    response.url = "https://fcm.test"
    response.text = str(body)
    response.json.return_value = body or {}
    return response


@pytest.fixture
def fcm(monkeypatch, test_config):
    monkeypatch.setattr(test_config, "FIREBASE_PROJECT_ID", "cars-g")
    credentials = mock.Mock(token="oauth-token")
    monkeypatch.setattr(loader, "get_google_credentials", lambda: credentials)
    return credentials


def test_register_token_upserts_on_token(fake_db):
    push.register_token("user-1", "device-token", "web", "Firefox")
    push.register_token("user-2", "device-token", "android")

    rows = fake_db.rows("push_subscriptions")
    assert len(rows) == 1
    assert rows[0]["user_id"] == "user-2" and rows[0]["platform"] == "android"


def test_register_token_validation(fake_db):
    with pytest.raises(HTTPException):
        push.register_token("user-1", "  ")
    with pytest.raises(HTTPException):
        push.register_token("user-1", "token", "blackberry")


def test_unregister_only_removes_own_token(fake_db):
    push.register_token("user-1", "device-token")

    assert push.unregister_token("user-2", "device-token") is False
    assert push.unregister_token("user-1", "device-token") is True
    assert fake_db.rows("push_subscriptions") == []


def test_send_push_unconfigured_returns_zero(fake_db):
    push.register_token("user-1", "device-token")
    with mock.patch("carsg.core.http.requests.post") as post:
        assert push.send_push_to_user("user-1", "Hi", "Body") == 0
    post.assert_not_called()


def test_send_push_counts_successes_and_drops_unregistered(fake_db, fcm):
    push.register_token("user-1", "good-token")
    push.register_token("user-1", "stale-token")
    push.register_token("user-1", "gone-token")
    responses = [
        _response(200, {"name": "projects/cars-g/messages/1"}),
        _response(400, {"error": {"status": "INVALID_ARGUMENT", "details": [{"errorCode": "UNREGISTERED"}]}}),
        _response(404, {"error": {"status": "NOT_FOUND"}}),
    ]

    with mock.patch("carsg.core.http.requests.post", side_effect=responses) as post:
        sent = push.send_push_to_user("user-1", "Report update", "Resolved", {"reportId": 7})

    assert sent == 1
    assert [row["token"] for row in fake_db.rows("push_subscriptions")] == ["good-token"]
    first_call = post.call_args_list[0]
    assert first_call.args[0] == "https://fcm.googleapis.com/v1/projects/cars-g/messages:send"
    assert first_call.kwargs["headers"]["Authorization"] == "Bearer oauth-token"
    assert first_call.kwargs["json"]["message"]["data"] == {"reportId": "7"}


def test_send_push_keeps_token_on_transient_error(fake_db, fcm):
    push.register_token("user-1", "good-token")
    with mock.patch("carsg.core.http.requests.post", side_effect=requests.ConnectionError()):
        assert push.send_push_to_user("user-1", "t", "b") == 0
    assert len(fake_db.rows("push_subscriptions")) == 1


def test_notify_user_survives_push_failure(fake_db, monkeypatch):
    def _boom(*_args, **_kwargs):
        raise RuntimeError("credentials file missing")

    monkeypatch.setattr(push, "send_push_to_user", _boom)

    assert push.notify_user("user-1", "Title", "Message", "report_update", "/reports/1") is True
    assert fake_db.rows("notifications")[0]["read"] is False


def test_notification_routes(client, fake_db, make_headers):
    headers = make_headers("user-1")
    assert client.post("/api/push/register", json={"token": "device-token"}, headers=headers).status_code == 200
    push.create_notification("user-1", "Hello", "World")
    notification_id = fake_db.rows("notifications")[0]["id"]

    listed = client.get("/api/notifications", headers=headers)
    marked = client.post(f"/api/notifications/{notification_id}/read", headers=headers)
    foreign = client.post(f"/api/notifications/{notification_id}/read", headers=make_headers("user-2"))
    removed = client.request("DELETE", "/api/push/register", json={"token": "device-token"}, headers=headers)

    assert len(listed.json()["notifications"]) == 1
    assert marked.json()["notification"]["read"] is True
    assert foreign.status_code == 404
    assert removed.json()["removed"] is True
