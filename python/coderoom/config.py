"""
Runtime configuration for Coderoom.

Every setting can be overridden through an environment variable of the
same name in upper case.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_JUDGE0_URL = "https://judge0-ce.p.rapidapi.com/submissions?base64_encoded=false&wait=true"
DEFAULT_RAPIDAPI_HOST = "judge0-ce.p.rapidapi.com"
DEFAULT_CLIENT_URLS = ["http://localhost:5173", "http://localhost:3000"]


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    value = float(raw)
    # 0 switches the feature off
    return value if value > 0 else None


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Settings:
    """
    Server settings.

    Attributes:
        host: Interface to bind.
        port: Port to bind.
        log_level: Root logger level name.
        database_url: PostgreSQL DSN; empty keeps rooms in memory only.
        jwt_secret: Secret for bearer tokens; empty accepts any token.
        judge0_url: Submission endpoint of the execution service.
        rapidapi_key: API key sent to the execution service.
        rapidapi_host: Host header sent to the execution service.
        client_urls: Origins allowed by CORS.
        max_message_size: Largest accepted WebSocket frame, in bytes.
        rate_limit: Messages per second allowed per connection.
        message_timeout: Idle seconds before the server pings a client.
        idle_room_timeout: Seconds an empty room stays live; None keeps it forever.
        idle_sweep_interval: Seconds between idle room sweeps.
    """

    host: str = "0.0.0.0"
    port: int = 5000
    log_level: str = "INFO"
    database_url: str = ""
    jwt_secret: str = ""
    judge0_url: str = DEFAULT_JUDGE0_URL
    rapidapi_key: str = ""
    rapidapi_host: str = DEFAULT_RAPIDAPI_HOST
    client_urls: list[str] = field(default_factory=lambda: list(DEFAULT_CLIENT_URLS))
    max_message_size: int = 1024 * 1024
    rate_limit: int = 100
    message_timeout: float = 60.0
    idle_room_timeout: float | None = None
    idle_sweep_interval: float = 60.0

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", 5000)),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            database_url=os.getenv("DATABASE_URL", ""),
            jwt_secret=os.getenv("JWT_SECRET", ""),
            judge0_url=os.getenv("JUDGE0_URL", DEFAULT_JUDGE0_URL),
            rapidapi_key=os.getenv("RAPIDAPI_KEY", ""),
            rapidapi_host=os.getenv("RAPIDAPI_HOST", DEFAULT_RAPIDAPI_HOST),
            client_urls=_env_list("CLIENT_URLS", DEFAULT_CLIENT_URLS),
            max_message_size=int(os.getenv("MAX_MESSAGE_SIZE", 1024 * 1024)),
            rate_limit=int(os.getenv("RATE_LIMIT", 100)),
            message_timeout=float(os.getenv("MESSAGE_TIMEOUT", 60)),
            idle_room_timeout=_env_float("IDLE_ROOM_TIMEOUT", None),
            idle_sweep_interval=_env_float("IDLE_SWEEP_INTERVAL", 60.0) or 60.0,
        )


__all__ = [
    "Settings",
]
