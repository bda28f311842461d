"""Shared pytest fixtures for backend tests."""

from __future__ import annotations

import itertools
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator

import pytest
from fastapi.testclient import TestClient

ROOT_DIR = Path(__file__).resolve().parents[1]
for path in (ROOT_DIR, ROOT_DIR / "src"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from app.api import ws as ws_module
from app.main import app
from parley.realtime.connections import ConnectionManager
from parley.realtime.managers import FanoutRouter


class FakeClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self) -> None:
        self.current = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value


class RecordingOutbound:
    """Stand-in for the connection manager that records every queued frame."""

    def __init__(self, handles: Iterable[str] = ()) -> None:
        self.live: set[str] = set(handles)
        self.sent: list[tuple[str, str, Any]] = []

    def connect(self, *handles: str) -> None:
        self.live.update(handles)

    def send(self, handle: str, event: str, data: Any) -> bool:
        if handle not in self.live:
            return False
        self.sent.append((handle, event, data))
        return True

    def send_many(self, handles: Iterable[str], event: str, data: Any) -> int:
        return sum(1 for handle in dict.fromkeys(handles) if self.send(handle, event, data))

    def broadcast(self, event: str, data: Any) -> int:
        return self.send_many(sorted(self.live), event, data)

    def frames(self, handle: str | None = None, event: str | None = None) -> list[Any]:
        return [
            data
            for target, name, data in self.sent
            if (handle is None or target == handle) and (event is None or name == event)
        ]

    def recipients(self, event: str) -> list[str]:
        return [target for target, name, _ in self.sent if name == event]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def outbound() -> RecordingOutbound:
    return RecordingOutbound(["a", "b", "c", "d"])


@pytest.fixture()
def router(outbound: RecordingOutbound, clock: FakeClock) -> FanoutRouter:
    counter = itertools.count(1)
    return FanoutRouter(outbound, clock=clock, id_factory=lambda: f"id-{next(counter)}")


@pytest.fixture()
def client(monkeypatch) -> Iterator[TestClient]:
    """Yield a TestClient whose websocket endpoint routes through fresh state."""

    connections = ConnectionManager()
    monkeypatch.setattr(ws_module, "connections", connections)
    monkeypatch.setattr(ws_module, "fanout", FanoutRouter(connections))
    with TestClient(app) as test_client:
        yield test_client
