"""Protocol layer: typed stream events, mode normalization and SSE framing."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

StreamMode = Literal["continuous", "single"]
STREAM_MODES: tuple[str, ...] = ("continuous", "single")
DEFAULT_MODE: StreamMode = "continuous"
TICK_VALUE_CEILING = 1000


class MalformedFrameError(ValueError):
    """Raised when an inbound SSE data block is not a usable stream event."""


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_mode(raw: Any) -> StreamMode:
    """Map any requested mode to a supported one; only `single` opts out of streaming."""
    if raw is None:
        return DEFAULT_MODE
    return "single" if str(raw).lower() == "single" else "continuous"


class HeaderSnapshot(BaseModel):
    """Summary of the inbound request headers echoed back in the handshake."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    origin: str | None = None
    cookie: Literal["present", "absent"] | None = None
    user_agent: str | None = Field(default=None, alias="userAgent")
    accept: str | None = None


class StreamEventBase(BaseModel):
    """Fields shared by every event; unknown event types decode to this shape."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: str
    at: str = Field(default_factory=utc_now_iso)
    mode: StreamMode | None = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class HeartbeatEvent(StreamEventBase):
    type: Literal["heartbeat"] = "heartbeat"


class TickEvent(StreamEventBase):
    type: Literal["tick"] = "tick"
    value: int = Field(ge=0, lt=TICK_VALUE_CEILING)


class HandshakeEvent(StreamEventBase):
    """First event of every session: request metadata plus effective config."""

    type: Literal["handshake"] = "handshake"
    headers: HeaderSnapshot
    with_credentials: bool = Field(alias="withCredentials")


StreamEvent = Union[HandshakeEvent, HeartbeatEvent, TickEvent, StreamEventBase]

_VARIANTS: dict[str, type[StreamEventBase]] = {
    "handshake": HandshakeEvent,
    "heartbeat": HeartbeatEvent,
    "tick": TickEvent,
}


def format_sse(event: StreamEventBase) -> str:
    """Frame one event as a single `data:` block."""
    return f"data: {event.to_json()}\n\n"


def decode_event(data: str) -> StreamEvent:
    """Decode one SSE data block into the matching event variant.

    Only a string `type` and a string `at` are required. A known variant whose
    payload fields do not validate degrades to the base shape instead of being
    rejected.
    """
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as exc:
        raise MalformedFrameError(f"invalid JSON: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise MalformedFrameError(f"expected an object, got {type(payload).__name__}")
    if not isinstance(payload.get("type"), str) or not isinstance(payload.get("at"), str):
        raise MalformedFrameError("missing string `type` or `at`")

    model = _VARIANTS.get(payload["type"], StreamEventBase)
    try:
        return model.model_validate(payload)
    except ValidationError:
        mode = payload.get("mode")
        return StreamEventBase(
            type=payload["type"],
            at=payload["at"],
            mode=mode if mode in STREAM_MODES else None,
        )


class SSEDecoder:
    """Incremental text/event-stream parser yielding complete `data` payloads.

    Feed it one line at a time (without the trailing newline). A blank line
    dispatches the buffered data; comments and non-data fields are ignored.
    """

    def __init__(self) -> None:
        self._data: list[str] = []

    def feed(self, line: str) -> str | None:
        if not line:
            if not self._data:
                return None
            block = "\n".join(self._data)
            self._data = []
            return block
        if line.startswith(":"):
            return None
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            self._data.append(value)
        return None
