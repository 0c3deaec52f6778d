# tests/conftest.py
from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Tuple

import pytest

from chat_relay.services.chat_hub import ChatHub
from chat_relay.services.dedup_window import DedupWindow
from chat_relay.services.message_router import MessageRouter
from chat_relay.services.room_manager import RoomManager
from chat_relay.services.session_table import SessionTable


class FakeClock:
    """Monotonic seconds that only move when a test says so."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FrozenWallClock:
    """datetime source stuck on one instant unless advanced."""

    def __init__(self) -> None:
        self.moment = datetime(2024, 5, 1, 14, 3, 7, 123000)

    def __call__(self) -> datetime:
        return self.moment

    def advance(self, **kwargs) -> None:
        self.moment += timedelta(**kwargs)


class RecordingTransport:
    """Collects every frame the hub hands out, per connection."""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, dict]] = []

    def send(self, connection_id: str, payload: dict) -> None:
        self.sent.append((connection_id, payload))

    def frames(self, connection_id: str, type_: str | None = None) -> List[dict]:
        return [
            p for c, p in self.sent
            if c == connection_id and (type_ is None or p.get("type") == type_)
        ]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def wall_clock():
    return FrozenWallClock()


@pytest.fixture
def room_manager():
    return RoomManager(history_cap=100)


@pytest.fixture
def dedup(clock):
    return DedupWindow(window_seconds=60, clock=clock)


@pytest.fixture
def router(room_manager, dedup, wall_clock):
    return MessageRouter(room_manager=room_manager, dedup=dedup, now=wall_clock)


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def hub(transport, room_manager, router):
    return ChatHub(
        transport=transport,
        room_manager=room_manager,
        sessions=SessionTable(),
        router=router,
        history_limit=50,
    )
