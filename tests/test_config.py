"""Tests for environment configuration."""

from __future__ import annotations

from coderoom.auth import JWTAuthProvider, NoAuth
from coderoom.config import DEFAULT_JUDGE0_URL, Settings
from coderoom.server import CoderoomServer
from coderoom.storage import MemoryStorage, PostgresStorage


def test_defaults(monkeypatch):
    for name in ("PORT", "DATABASE_URL", "JWT_SECRET", "CLIENT_URLS", "IDLE_ROOM_TIMEOUT", "JUDGE0_URL"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.port == 5000
    assert settings.database_url == ""
    assert settings.judge0_url == DEFAULT_JUDGE0_URL
    assert settings.idle_room_timeout is None
    assert "http://localhost:5173" in settings.client_urls


def test_overrides(monkeypatch):
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("CLIENT_URLS", "https://a.example, https://b.example,")
    monkeypatch.setenv("IDLE_ROOM_TIMEOUT", "900")
    monkeypatch.setenv("RATE_LIMIT", "5")

    settings = Settings.from_env()

    assert settings.port == 8080
    assert settings.log_level == "DEBUG"
    assert settings.client_urls == ["https://a.example", "https://b.example"]
    assert settings.idle_room_timeout == 900.0
    assert settings.rate_limit == 5


def test_zero_idle_timeout_disables_eviction(monkeypatch):
    monkeypatch.setenv("IDLE_ROOM_TIMEOUT", "0")
    assert Settings.from_env().idle_room_timeout is None


def test_server_picks_collaborators_from_settings():
    plain = CoderoomServer.from_settings(Settings())
    assert isinstance(plain.storage, MemoryStorage)
    assert isinstance(plain._auth, NoAuth)

    configured = CoderoomServer.from_settings(
        Settings(database_url="postgresql://localhost/coderoom", jwt_secret="s3cret")
    )
    assert isinstance(configured.storage, PostgresStorage)
    assert isinstance(configured._auth, JWTAuthProvider)
