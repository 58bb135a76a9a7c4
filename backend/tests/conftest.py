"""
Shared fixtures: a hand-driven clock, a registry and a protocol whose
emitter records every outbound event.
"""

import pytest
from unittest.mock import AsyncMock

from watchsync.services.room import RoomRegistry
from watchsync.services.sync import SyncProtocol


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock(1000.0)


@pytest.fixture
def registry(clock):
    return RoomRegistry(clock=clock)


@pytest.fixture
def emit():
    return AsyncMock()


@pytest.fixture
def protocol(registry, emit):
    return SyncProtocol(registry, emit)


@pytest.fixture
def sent(emit):
    """Returns (event, data, recipient) for every awaited emit so far."""
    def _sent():
        return [(c.args[0], c.args[1], c.kwargs.get("to")) for c in emit.await_args_list]
    return _sent
