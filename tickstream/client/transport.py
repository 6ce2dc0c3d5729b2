"""Client transport: EventSource-style SSE reader on top of httpx streaming."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Protocol

import httpx

from tickstream.infra.observability.logger import get_logger
from tickstream.protocol.events import SSEDecoder

logger = get_logger(__name__)


class EventSourceHandle(Protocol):
    def close(self) -> None: ...


class TransportFactory(Protocol):
    def __call__(
        self,
        url: str,
        *,
        with_credentials: bool,
        on_open: Callable[[], None],
        on_error: Callable[[], None],
        on_message: Callable[[str], None],
    ) -> EventSourceHandle: ...


class HttpxEventSource:
    """One streaming GET, reported through open/error/message callbacks.

    `on_error` fires once when the request fails, a callback raises or the
    server ends the stream, and never after `close()`. Must be created on a running loop.
    """

    def __init__(
        self,
        url: str,
        *,
        with_credentials: bool,
        on_open: Callable[[], None],
        on_error: Callable[[], None],
        on_message: Callable[[str], None],
        cookies: httpx.Cookies | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self._on_open = on_open
        self._on_error = on_error
        self._on_message = on_message
        self._client = httpx.AsyncClient(
            cookies=cookies if with_credentials else None,
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            transport=transport,
        )
        self._closed = False
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"sse-client:{url}")

    async def _run(self) -> None:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        try:
            async with self._client.stream("GET", self.url, headers=headers) as response:
                response.raise_for_status()
                if self._closed:
                    return
                self._on_open()
                decoder = SSEDecoder()
                async for line in response.aiter_lines():
                    data = decoder.feed(line)
                    if data is not None and not self._closed:
                        self._on_message(data)
        except httpx.HTTPError as exc:
            logger.warning("Event stream to %s failed: %s", self.url, exc)
        except Exception:
            logger.exception("Event stream to %s aborted", self.url)
        else:
            logger.info("Event stream to %s ended by server", self.url)
        finally:
            await self._client.aclose()
        self._fail()

    def _fail(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._on_error()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._task.cancel()
