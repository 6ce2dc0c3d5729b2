"""Stream layer: per-connection sessions with heartbeat/tick timers and their registry.

Sessions, timers and registry membership all live on the event loop serving
the requests, so nothing here takes a lock. A session is closed at most once;
every later `close()` and every write after it is a no-op.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import AsyncIterator, Callable, Mapping
from itertools import count

from tickstream.infra.observability.logger import get_logger
from tickstream.protocol.events import (
    TICK_VALUE_CEILING,
    HandshakeEvent,
    HeaderSnapshot,
    HeartbeatEvent,
    StreamEventBase,
    StreamMode,
    TickEvent,
    format_sse,
    normalize_mode,
)

logger = get_logger(__name__)


def summarize_headers(headers: Mapping[str, str]) -> HeaderSnapshot:
    """Reduce request headers to the fixed handshake snapshot (lowercase keys)."""
    return HeaderSnapshot(
        origin=headers.get("origin"),
        cookie="present" if headers.get("cookie") else "absent",
        user_agent=headers.get("user-agent"),
        accept=headers.get("accept"),
    )


class StreamSession:
    """One open event-stream connection.

    Frames are queued as already-framed strings; the HTTP response drains them
    through `frames()`. A `None` in the queue marks the end of the stream.
    """

    def __init__(
        self,
        *,
        session_id: int,
        mode: StreamMode,
        heartbeat_seconds: float,
        tick_seconds: float,
        rng: random.Random,
        on_close: Callable[["StreamSession"], None],
    ) -> None:
        self.session_id = session_id
        self.mode = mode
        self._heartbeat_seconds = heartbeat_seconds
        self._tick_seconds = tick_seconds
        self._rng = rng
        self._on_close = on_close
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._tick_task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def has_timers(self) -> bool:
        return self._heartbeat_task is not None or self._tick_task is not None

    def write(self, event: StreamEventBase) -> bool:
        """Queue one framed event; return False once the session is closed."""
        if self._closed:
            return False
        self._queue.put_nowait(format_sse(event))
        return True

    def send_tick(self) -> bool:
        return self.write(TickEvent(value=self._rng.randrange(TICK_VALUE_CEILING), mode=self.mode))

    def send_heartbeat(self) -> bool:
        return self.write(HeartbeatEvent(mode=self.mode))

    def start_timers(self) -> None:
        """Start heartbeat and tick timers; must run on the serving event loop."""
        if self._closed or self.has_timers:
            return
        loop = asyncio.get_running_loop()
        self._heartbeat_task = loop.create_task(
            self._every(self._heartbeat_seconds, self.send_heartbeat),
            name=f"sse-heartbeat-{self.session_id}",
        )
        self._tick_task = loop.create_task(
            self._every(self._tick_seconds, self.send_tick),
            name=f"sse-tick-{self.session_id}",
        )

    async def _every(self, interval: float, send: Callable[[], bool]) -> None:
        while not self._closed:
            await asyncio.sleep(interval)
            if not send():
                return

    def close(self) -> None:
        """Cancel timers, end the frame stream and leave the registry. Idempotent."""
        if self._closed:
            return
        self._closed = True
        for task in (self._heartbeat_task, self._tick_task):
            if task is not None and not task.done():
                task.cancel()
        self._heartbeat_task = None
        self._tick_task = None
        self._queue.put_nowait(None)
        self._on_close(self)

    async def frames(self) -> AsyncIterator[str]:
        """Yield queued frames until the session ends.

        Cancellation of the consumer (peer gone, send failed, server shutdown)
        closes the session the same way an explicit close does.
        """
        try:
            while True:
                frame = await self._queue.get()
                if frame is None:
                    return
                yield frame
        finally:
            self.close()


class SessionRegistry:
    """Open sessions for the process, keyed by identity."""

    def __init__(
        self,
        *,
        with_credentials: bool = True,
        heartbeat_seconds: float = 10.0,
        tick_seconds: float = 3.0,
        rng: random.Random | None = None,
    ) -> None:
        self._with_credentials = with_credentials
        self._heartbeat_seconds = heartbeat_seconds
        self._tick_seconds = tick_seconds
        self._rng = rng or random.Random()
        self._ids = count(1)
        self._sessions: set[StreamSession] = set()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session: object) -> bool:
        return session in self._sessions

    def open_session(self, mode_param: str | None, headers: Mapping[str, str]) -> StreamSession:
        """Register a session and emit its handshake.

        Single mode also emits its one tick and closes before returning; the
        queued frames stay readable through `frames()`. Continuous mode starts
        both timers, so it must be called from the serving event loop.
        """
        mode = normalize_mode(mode_param)
        session = StreamSession(
            session_id=next(self._ids),
            mode=mode,
            heartbeat_seconds=self._heartbeat_seconds,
            tick_seconds=self._tick_seconds,
            rng=self._rng,
            on_close=self._discard,
        )
        self._sessions.add(session)
        logger.info("Client connected (%d total)", len(self._sessions))

        session.write(
            HandshakeEvent(
                headers=summarize_headers(headers),
                with_credentials=self._with_credentials,
                mode=mode,
            )
        )
        if mode == "single":
            session.send_tick()
            session.close()
        else:
            session.start_timers()
        return session

    def close_all(self) -> int:
        """Close every open session; return how many were closed."""
        sessions = list(self._sessions)
        for session in sessions:
            session.close()
        return len(sessions)

    def _discard(self, session: StreamSession) -> None:
        if session in self._sessions:
            self._sessions.discard(session)
            logger.info("Client disconnected (%d remaining)", len(self._sessions))
