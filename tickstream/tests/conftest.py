"""Test fixtures shared by unit/integration tests."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import pytest

from tickstream.client.event_store import EventStore

ENDPOINT = "http://testserver/events"


class FakeEventSource:
    """Transport double driven by the test instead of the network."""

    def __init__(
        self,
        url: str,
        *,
        with_credentials: bool,
        on_open: Callable[[], None],
        on_error: Callable[[], None],
        on_message: Callable[[str], None],
    ) -> None:
        self.url = url
        self.with_credentials = with_credentials
        self._on_open = on_open
        self._on_error = on_error
        self._on_message = on_message
        self.closed = False

    def close(self) -> None:
        self.closed = True

    def open(self) -> None:
        self._on_open()

    def fail(self) -> None:
        self._on_error()

    def send(self, payload: Any) -> None:
        self._on_message(payload if isinstance(payload, str) else json.dumps(payload))


class FakeTransportFactory:
    def __init__(self) -> None:
        self.sources: list[FakeEventSource] = []

    def __call__(self, url: str, **kwargs: Any) -> FakeEventSource:
        source = FakeEventSource(url, **kwargs)
        self.sources.append(source)
        return source

    @property
    def latest(self) -> FakeEventSource:
        return self.sources[-1]


@dataclass
class ManualTimer:
    due: float
    callback: Callable[[], None]
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic stand-in for loop.call_later; time moves only via advance()."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: list[ManualTimer] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(due=self.now + delay, callback=callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[ManualTimer]:
        return [timer for timer in self.timers if not timer.cancelled and not timer.fired]

    def advance(self, seconds: float) -> None:
        self.now += seconds
        for timer in sorted(self.pending, key=lambda item: item.due):
            if timer.due <= self.now and not timer.cancelled:
                timer.fired = True
                timer.callback()


@pytest.fixture
def transport() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def store(transport: FakeTransportFactory, scheduler: ManualScheduler) -> EventStore:
    return EventStore(ENDPOINT, transport_factory=transport, scheduler=scheduler)
