"""Shared pytest fixtures.

fake_db      -- in-memory Supabase patched over every service's ``get_client``
client       -- FastAPI TestClient for the full app
make_headers -- builds ``Authorization`` headers carrying an app access token
"""

import pytest
from fastapi.testclient import TestClient

from carsg.app import app
from carsg.auth.tokens import generate_token
from carsg.core.cache import leaderboard_cache, statistics_cache
from carsg.core.config import Config
from carsg.services import chat, comments, points, push, reports, supabase_service, verification
from carsg.services.realtime import manager

from .fakes import FakeSupabase


SERVICE_MODULES = (supabase_service, verification, points, reports, comments, chat, push)


@pytest.fixture(autouse=True)
def test_config(monkeypatch):
    monkeypatch.setattr(Config, "JWT_SECRET", "test-secret")
    monkeypatch.setattr(Config, "JWT_EXPIRES_IN", "24h")
    monkeypatch.setattr(Config, "JWT_REFRESH_EXPIRES_IN", "7d")
    monkeypatch.setattr(Config, "ENVIRONMENT", "development")
    monkeypatch.setattr(Config, "EMAIL_FALLBACK_MODE", "false")
    monkeypatch.setattr(Config, "FIREBASE_PROJECT_ID", "")
    monkeypatch.setattr(Config, "GOOGLE_APPLICATION_CREDENTIALS", "")
    monkeypatch.setattr(Config, "REPORT_DAILY_LIMIT", 20)
    monkeypatch.setattr(Config, "SUPABASE_BUCKET", "reports")
    yield Config


@pytest.fixture(autouse=True)
def clean_state():
    leaderboard_cache.clear()
    statistics_cache.clear()
    manager.connections.clear()
    manager.rooms.clear()
    manager.connection_limiter.reset()
    manager.message_limiter.reset()
    yield


@pytest.fixture
def fake_db(monkeypatch):
    db = FakeSupabase()
    for module in SERVICE_MODULES:
        monkeypatch.setattr(module, "get_client", lambda: db)
    return db


@pytest.fixture
def client(fake_db):
    return TestClient(app)


@pytest.fixture
def make_headers():
    def _make(user_id="user-1", role="user", username=None, email=None):
        token = generate_token({
            "id": user_id,
            "role": role,
            "username": username or user_id,
            "email": email or f"{user_id}@example.com",
        })
        return {"Authorization": f"Bearer {token}"}

    return _make
