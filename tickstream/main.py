"""FastAPI entrypoint: wires config, container, routes, and lifecycle hooks."""

from __future__ import annotations

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tickstream.api.http.status import router as status_router
from tickstream.api.stream.sse import router as sse_router
from tickstream.core.config import Settings
from tickstream.core.container import build_container
from tickstream.core.lifecycle import on_shutdown, on_startup
from tickstream.infra.observability.logger import setup_logging


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    setup_logging(settings.log_level)
    container = build_container(settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        on_startup(container)
        try:
            yield
        finally:
            on_shutdown(container)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in settings.client_origin.split(",") if origin.strip()],
        allow_credentials=settings.with_credentials,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.include_router(status_router)
    app.include_router(sse_router)

    return app


app = create_app()


def run() -> None:
    """Serve the module-level app with uvicorn on the configured host/port."""
    settings: Settings = app.state.settings
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
