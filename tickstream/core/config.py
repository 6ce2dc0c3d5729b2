"""Configuration layer: load server and client settings from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

from tickstream.protocol.events import StreamMode, normalize_mode


def _env_enabled_unless_false(name: str) -> bool:
    """Only an explicit `false` turns the flag off; unset or any other value keeps it on."""
    return os.getenv(name, "").strip().lower() != "false"


@dataclass(frozen=True)
class Settings:
    """Immutable server settings consumed once at session creation."""

    app_name: str = "tickstream SSE server"
    app_version: str = "0.1.0"
    env: str = "dev"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 4000
    client_origin: str = "http://localhost:5173"
    with_credentials: bool = True
    heartbeat_seconds: float = 10.0
    tick_seconds: float = 3.0

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from process env with deterministic defaults."""
        return cls(
            app_name=os.getenv("APP_NAME", cls.app_name),
            app_version=os.getenv("APP_VERSION", cls.app_version),
            env=os.getenv("APP_ENV", cls.env),
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
            host=os.getenv("HOST", cls.host),
            port=int(os.getenv("PORT", str(cls.port))),
            client_origin=os.getenv("CLIENT_ORIGIN", cls.client_origin),
            with_credentials=_env_enabled_unless_false("WITH_CREDENTIALS"),
            heartbeat_seconds=float(
                os.getenv("SSE_HEARTBEAT_SECONDS", str(cls.heartbeat_seconds))
            ),
            tick_seconds=float(os.getenv("SSE_TICK_SECONDS", str(cls.tick_seconds))),
        )


@dataclass(frozen=True)
class ClientSettings:
    """Immutable settings for the stream client store and its transport."""

    events_url: str = "http://localhost:4000/events"
    with_credentials: bool = True
    reconnect_seconds: float = 3.0
    history_limit: int = 20
    default_mode: StreamMode = "continuous"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "ClientSettings":
        return cls(
            events_url=os.getenv("SSE_URL", cls.events_url),
            with_credentials=_env_enabled_unless_false("WITH_CREDENTIALS"),
            reconnect_seconds=float(
                os.getenv("SSE_RECONNECT_SECONDS", str(cls.reconnect_seconds))
            ),
            history_limit=int(os.getenv("SSE_HISTORY_LIMIT", str(cls.history_limit))),
            default_mode=normalize_mode(os.getenv("SSE_DEFAULT_MODE", cls.default_mode)),
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
        )
