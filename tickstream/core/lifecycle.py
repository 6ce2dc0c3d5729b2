"""Lifecycle hooks for startup diagnostics and session shutdown."""

from __future__ import annotations

from tickstream.core.container import AppContainer
from tickstream.infra.observability.logger import get_logger

logger = get_logger(__name__)


def on_startup(container: AppContainer) -> None:
    settings = container.settings
    logger.info(
        "SSE server listening on http://%s:%s (heartbeat=%ss, tick=%ss, credentials=%s)",
        settings.host,
        settings.port,
        settings.heartbeat_seconds,
        settings.tick_seconds,
        settings.with_credentials,
    )


def on_shutdown(container: AppContainer) -> None:
    closed = container.registry.close_all()
    logger.info("SSE server shutdown complete; closed %d open session(s).", closed)
