"""Stream API layer: SSE endpoint emitting handshake, heartbeat and tick events."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from tickstream.api.deps import get_container
from tickstream.core.container import AppContainer
from tickstream.stream.session_registry import StreamSession

router = APIRouter(tags=["stream"])


class SessionStreamingResponse(StreamingResponse):
    """Streams a session's frames and closes the session however the response ends.

    This also covers a peer that is gone before the first body chunk, when the
    frame generator never starts and its own cleanup never runs.
    """

    def __init__(self, session: StreamSession, **kwargs) -> None:
        super().__init__(session.frames(), **kwargs)
        self.session = session

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            self.session.close()


@router.get("/events")
async def events(
    request: Request,
    mode: str | None = Query(default=None),
    container: AppContainer = Depends(get_container),
) -> StreamingResponse:
    session = container.registry.open_session(mode, request.headers)
    headers = {
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
    }
    if container.settings.with_credentials:
        headers["Access-Control-Allow-Credentials"] = "true"
    return SessionStreamingResponse(
        session,
        media_type="text/event-stream",
        headers=headers,
    )
