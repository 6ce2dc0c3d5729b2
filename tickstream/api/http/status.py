"""HTTP API layer: informational root and health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from tickstream.api.deps import get_container
from tickstream.core.container import AppContainer

router = APIRouter(tags=["status"])


@router.get("/")
def root() -> dict:
    return {
        "message": "SSE server is running",
        "events": "/events",
    }


@router.get("/health")
def health(container: AppContainer = Depends(get_container)) -> dict:
    return {
        "status": "ok",
        "env": container.settings.env,
        "sessions": len(container.registry),
    }
