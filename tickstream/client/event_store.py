"""Client state store: one reconnecting stream subscription folded into snapshots.

The store owns its transport handle, reconnect timer and listener set. Every
transition replaces the `StreamState` value wholesale and then notifies
listeners synchronously, so a snapshot obtained from `get_snapshot()` never
changes under its reader.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any, Literal, Protocol

import httpx

from tickstream.client.transport import EventSourceHandle, HttpxEventSource, TransportFactory
from tickstream.infra.observability.logger import get_logger
from tickstream.protocol.events import (
    DEFAULT_MODE,
    STREAM_MODES,
    HandshakeEvent,
    HeaderSnapshot,
    MalformedFrameError,
    StreamEvent,
    StreamMode,
    decode_event,
)

logger = get_logger(__name__)

StreamStatus = Literal["idle", "connecting", "connected", "error", "server"]
Listener = Callable[[], None]

HISTORY_LIMIT = 20
RECONNECT_SECONDS = 3.0


class TimerHandle(Protocol):
    def cancel(self) -> Any: ...


Scheduler = Callable[[float, Callable[[], None]], TimerHandle]


def loop_scheduler(delay: float, callback: Callable[[], None]) -> TimerHandle:
    """Default scheduler: a one-shot timer on the running asyncio loop."""
    return asyncio.get_running_loop().call_later(delay, callback)


def build_stream_url(endpoint: str, mode: StreamMode) -> str:
    return str(httpx.URL(endpoint).copy_set_param("mode", mode))


@dataclass(frozen=True)
class StreamState:
    """Immutable snapshot handed to the rendering layer."""

    status: StreamStatus = "idle"
    last_event: StreamEvent | None = None
    history: tuple[StreamEvent, ...] = ()
    headers: HeaderSnapshot | None = None
    with_credentials: bool = True
    mode: StreamMode = DEFAULT_MODE


class EventStore:
    """External store over a single SSE subscription.

    The rendering layer uses only `subscribe`, `get_snapshot`,
    `get_server_snapshot` and `set_mode`.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        with_credentials: bool = True,
        default_mode: StreamMode = DEFAULT_MODE,
        reconnect_seconds: float = RECONNECT_SECONDS,
        history_limit: int = HISTORY_LIMIT,
        transport_factory: TransportFactory | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._with_credentials = with_credentials
        self._default_mode = default_mode
        self._reconnect_seconds = reconnect_seconds
        self._history_limit = max(1, history_limit)
        self._transport_factory: TransportFactory = transport_factory or HttpxEventSource
        self._scheduler = scheduler or loop_scheduler
        self._state = StreamState(with_credentials=with_credentials, mode=default_mode)
        self._listeners: set[Listener] = set()
        self._source: EventSourceHandle | None = None
        self._reconnect_timer: TimerHandle | None = None
        # Bumped on every connect and teardown; callbacks from older handles are dropped.
        self._generation = 0

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; the first one opens the stream. Returns unsubscribe."""
        self._listeners.add(listener)
        if self._source is None:
            self._connect()

        def unsubscribe() -> None:
            self._listeners.discard(listener)
            if not self._listeners:
                self._disconnect()

        return unsubscribe

    def get_snapshot(self) -> StreamState:
        return self._state

    def get_server_snapshot(self) -> StreamState:
        """Neutral value for renders that happen before any connection attempt."""
        return StreamState(
            status="server",
            with_credentials=self._with_credentials,
            mode=self._default_mode,
        )

    def set_mode(self, mode: StreamMode) -> None:
        if mode not in STREAM_MODES:
            raise ValueError(f"unknown stream mode: {mode!r}")
        if mode == self._state.mode:
            return
        self._transition(mode=mode, status="idle", last_event=None, history=())
        self._cancel_reconnect()
        self._close_source()
        self._connect()

    @property
    def connected(self) -> bool:
        """Whether a transport handle is currently held."""
        return self._source is not None

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_timer is not None

    def _transition(self, *, notify: bool = True, **changes: Any) -> None:
        self._state = replace(self._state, **changes)
        if notify:
            for listener in list(self._listeners):
                listener()

    def _connect(self) -> None:
        if self._source is not None:
            return
        self._cancel_reconnect()
        self._generation += 1
        generation = self._generation
        self._transition(status="connecting")

        url = build_stream_url(self._endpoint, self._state.mode)
        logger.debug("Opening event stream %s", url)
        self._source = self._transport_factory(
            url,
            with_credentials=self._with_credentials,
            on_open=lambda: self._handle_open(generation),
            on_error=lambda: self._handle_error(generation),
            on_message=lambda data: self._handle_message(generation, data),
        )

    def _handle_open(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._transition(status="connected")

    def _handle_error(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._transition(status="idle" if self._state.mode == "single" else "error")
        self._close_source()
        self._schedule_reconnect()

    def _handle_message(self, generation: int, data: str) -> None:
        if generation != self._generation:
            return
        try:
            event = decode_event(data)
        except MalformedFrameError as exc:
            logger.warning("Received malformed SSE payload (%s): %r", exc, data)
            return
        self._apply_event(event)

    def _apply_event(self, event: StreamEvent) -> None:
        changes: dict[str, Any] = {
            "status": "connected",
            "last_event": event,
            "history": ((event,) + self._state.history)[: self._history_limit],
        }
        if isinstance(event, HandshakeEvent):
            changes["headers"] = event.headers
            changes["with_credentials"] = event.with_credentials
        # The server decides the effective mode of an open session.
        if event.mode is not None and event.mode != self._state.mode:
            changes["mode"] = event.mode
        self._transition(**changes)

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        if self._state.mode != "continuous":
            return
        logger.debug("Reconnecting in %.1fs", self._reconnect_seconds)
        self._reconnect_timer = self._scheduler(self._reconnect_seconds, self._reconnect_due)

    def _reconnect_due(self) -> None:
        self._reconnect_timer = None
        self._connect()

    def _cancel_reconnect(self) -> None:
        timer, self._reconnect_timer = self._reconnect_timer, None
        if timer is not None:
            timer.cancel()

    def _close_source(self) -> None:
        source, self._source = self._source, None
        self._generation += 1
        if source is not None:
            source.close()

    def _disconnect(self) -> None:
        self._cancel_reconnect()
        self._close_source()
        self._transition(
            notify=False,
            status="idle",
            last_event=None,
            history=(),
            headers=None,
            with_credentials=self._with_credentials,
        )
