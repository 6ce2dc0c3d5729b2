"""Console rendering layer: text view of `StreamState` snapshots plus a mode input."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import AsyncIterator
from datetime import datetime

from tickstream.client.event_store import EventStore, StreamState
from tickstream.core.config import ClientSettings
from tickstream.infra.observability.logger import get_logger
from tickstream.protocol.events import STREAM_MODES, StreamMode, TickEvent

logger = get_logger(__name__)

STATUS_LABELS: dict[str, str] = {
    "idle": "Idle",
    "connecting": "Connecting…",
    "connected": "Receiving updates",
    "error": "Reconnecting…",
    "server": "Server render",
}

MODE_LABELS: dict[str, str] = {
    "continuous": "Stream endlessly",
    "single": "Stop after one tick",
}

PLACEHOLDER = "—"


def format_time(iso: str | None) -> str:
    if not iso:
        return PLACEHOLDER
    try:
        return datetime.fromisoformat(iso.replace("Z", "+00:00")).astimezone().strftime("%H:%M:%S")
    except ValueError:
        return iso


def format_snapshot(state: StreamState) -> str:
    last = state.last_event
    value = last.value if isinstance(last, TickEvent) else PLACEHOLDER
    last_heartbeat = next((event for event in state.history if event.type == "heartbeat"), None)

    lines = [
        f"[{STATUS_LABELS.get(state.status, state.status)}] mode: {MODE_LABELS.get(state.mode, state.mode)}",
        f"  last event: {last.type if last else PLACEHOLDER}  value: {value}"
        f"  at: {format_time(last.at if last else None)}",
        f"  last heartbeat: {format_time(last_heartbeat.at if last_heartbeat else None)}",
        f"  credentials: {'included' if state.with_credentials else 'omitted'}",
    ]
    if state.headers is not None:
        for name, header in state.headers.model_dump(by_alias=True).items():
            lines.append(f"  header {name}: {header if header is not None else PLACEHOLDER}")
    if state.history:
        lines.append(f"  history ({len(state.history)}):")
        for event in state.history:
            suffix = f" {event.value}" if isinstance(event, TickEvent) else ""
            lines.append(f"    {format_time(event.at)} {event.type}{suffix}")
    return "\n".join(lines)


def apply_mode_command(store: EventStore, line: str) -> bool:
    """Switch the store to the mode named on one input line; return whether it was a mode."""
    command = line.strip().lower()
    if command in STREAM_MODES:
        store.set_mode(command)  # type: ignore[arg-type]
        return True
    if command:
        logger.warning("Ignoring %r; type one of: %s", command, ", ".join(STREAM_MODES))
    return False


async def follow_mode_commands(store: EventStore, commands: AsyncIterator[str]) -> None:
    async for line in commands:
        apply_mode_command(store, line)


async def stdin_lines() -> AsyncIterator[str]:
    """Lines typed on stdin, read without blocking the loop."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    try:
        await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    except (OSError, ValueError) as exc:
        logger.warning("Mode input unavailable on stdin: %s", exc)
        return
    while True:
        line = await reader.readline()
        if not line:
            return
        yield line.decode("utf-8", errors="replace")


async def watch(
    settings: ClientSettings,
    *,
    mode: StreamMode | None = None,
    commands: AsyncIterator[str] | None = None,
    store: EventStore | None = None,
) -> None:
    """Print every snapshot until cancelled.

    Lines from `commands` switch the stream mode. Without a command source the
    watch ends once a single-mode stream has delivered and gone idle.
    """
    if store is None:
        store = EventStore(
            settings.events_url,
            with_credentials=settings.with_credentials,
            default_mode=mode or settings.default_mode,
            reconnect_seconds=settings.reconnect_seconds,
            history_limit=settings.history_limit,
        )
    finished = asyncio.Event()
    seen_connected = False

    def render() -> None:
        nonlocal seen_connected
        state = store.get_snapshot()
        print(format_snapshot(state), flush=True)
        if state.status == "connected":
            seen_connected = True
        elif state.status == "idle" and state.mode == "single" and seen_connected and commands is None:
            finished.set()

    print(format_snapshot(store.get_server_snapshot()), flush=True)
    unsubscribe = store.subscribe(render)
    command_task = None
    if commands is not None:
        command_task = asyncio.get_running_loop().create_task(follow_mode_commands(store, commands))
    try:
        await finished.wait()
    finally:
        if command_task is not None:
            command_task.cancel()
        unsubscribe()
        logger.info("Stopped watching %s", settings.events_url)
