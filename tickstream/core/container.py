"""Composition layer: build and hold long-lived service objects for dependency injection."""

from __future__ import annotations

from dataclasses import dataclass

from tickstream.core.config import Settings
from tickstream.stream.session_registry import SessionRegistry


@dataclass
class AppContainer:
    """Container object attached to FastAPI app state."""

    settings: Settings
    registry: SessionRegistry


def build_container(settings: Settings) -> AppContainer:
    """Construct runtime dependencies in one place."""
    registry = SessionRegistry(
        with_credentials=settings.with_credentials,
        heartbeat_seconds=settings.heartbeat_seconds,
        tick_seconds=settings.tick_seconds,
    )
    return AppContainer(settings=settings, registry=registry)
