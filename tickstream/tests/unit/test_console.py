"""Unit tests for the console snapshot renderer."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from tickstream.client.console import apply_mode_command, follow_mode_commands, format_snapshot, format_time, watch
from tickstream.client.event_store import EventStore, StreamState
from tickstream.core.config import ClientSettings
from tickstream.protocol.events import HeaderSnapshot, HeartbeatEvent, TickEvent


def test_format_snapshot_shows_last_value_and_history() -> None:
    heartbeat = HeartbeatEvent(at="2026-01-01T00:00:00+00:00", mode="continuous")
    tick = TickEvent(at="2026-01-01T00:00:03+00:00", value=42, mode="continuous")
    state = StreamState(
        status="connected",
        last_event=tick,
        history=(tick, heartbeat),
        headers=HeaderSnapshot(origin="http://localhost:5173", cookie="absent"),
    )

    text = format_snapshot(state)

    assert text.startswith("[Receiving updates] mode: Stream endlessly")
    assert "last event: tick  value: 42" in text
    assert "header userAgent: —" in text
    assert "header origin: http://localhost:5173" in text
    assert "history (2):" in text
    assert "last heartbeat: —" not in text


def test_format_snapshot_for_empty_states() -> None:
    text = format_snapshot(StreamState(status="server", mode="single"))

    assert text.startswith("[Server render] mode: Stop after one tick")
    assert "last event: —  value: —" in text
    assert "last heartbeat: —" in text
    assert "history" not in text


def test_format_time_handles_missing_and_unparseable_values() -> None:
    assert format_time(None) == "—"
    assert format_time("yesterday") == "yesterday"
    assert format_time("2026-01-01T00:00:00Z") != "—"


async def _lines(*lines: str) -> AsyncIterator[str]:
    for line in lines:
        yield line


def test_mode_commands_drive_set_mode(store, transport) -> None:
    store.subscribe(lambda: None)

    asyncio.run(follow_mode_commands(store, _lines("single\n", "nonsense\n", "\n", "  CONTINUOUS \n")))

    assert [source.url.rsplit("=", 1)[-1] for source in transport.sources] == [
        "continuous",
        "single",
        "continuous",
    ]
    assert store.get_snapshot().mode == "continuous"


def test_apply_mode_command_ignores_current_mode_and_unknown_input(store, transport) -> None:
    store.subscribe(lambda: None)

    assert apply_mode_command(store, "continuous") is True
    assert apply_mode_command(store, "faster") is False
    assert len(transport.sources) == 1


def test_watch_without_commands_stops_after_single_stream_ends(transport, scheduler, capsys) -> None:
    store = EventStore(
        "http://testserver/events",
        default_mode="single",
        transport_factory=transport,
        scheduler=scheduler,
    )

    async def scenario() -> None:
        task = asyncio.create_task(watch(ClientSettings(), store=store))
        await asyncio.sleep(0.01)
        source = transport.latest
        source.open()
        source.send({"type": "tick", "at": "2026-01-01T00:00:00+00:00", "value": 5, "mode": "single"})
        source.fail()
        await asyncio.wait_for(task, timeout=1)

    asyncio.run(scenario())

    output = capsys.readouterr().out
    assert output.startswith("[Server render]")
    assert "[Receiving updates] mode: Stop after one tick" in output
    assert "last event: tick  value: 5" in output
    assert store.connected is False
