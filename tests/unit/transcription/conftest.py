"""Shared doubles for transcription adapter tests."""

import asyncio
import json

import numpy as np
import pytest

from matilda_bridge.audio.types import AudioChunk


class FakeWebSocket:
    """In-memory provider socket: records sends, replays fed messages."""

    def __init__(self):
        self.sent: list[dict] = []
        self.close_code: int | None = None
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, message):
        self.sent.append(json.loads(message))

    async def close(self):
        if self.close_code is None:
            self.close_code = 1000
            self._incoming.put_nowait(None)

    def feed(self, message: dict) -> None:
        self._incoming.put_nowait(json.dumps(message))

    def feed_raw(self, raw) -> None:
        self._incoming.put_nowait(raw)

    def end(self) -> None:
        """Simulate the provider ending the stream without a close handshake on our side."""
        self._incoming.put_nowait(None)

    def fail(self, error: Exception) -> None:
        """Make the next read raise ``error`` instead of returning a message."""
        self._incoming.put_nowait(error)

    def sent_types(self) -> list[str]:
        return [message.get("type", next(iter(message))) for message in self.sent]

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item


class FakeConnect:
    """Stand-in for ``websockets.connect`` that returns one FakeWebSocket."""

    def __init__(self, websocket: FakeWebSocket, error: Exception | None = None):
        self.websocket = websocket
        self.error = error
        self.calls: list[tuple[str, dict | None]] = []

    async def __call__(self, url, additional_headers=None):
        self.calls.append((url, additional_headers))
        if self.error is not None:
            raise self.error
        return self.websocket


async def wait_until(predicate, timeout=1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


def make_chunk(sample_count: int, sample_rate: int = 16000, value: int = 1000, sequence: int = 0) -> AudioChunk:
    return AudioChunk(
        source_id="track-1",
        samples=np.full(sample_count, value, dtype=np.int16),
        sample_rate=sample_rate,
        captured_at_ms=0.0,
        duration_ms=sample_count / sample_rate * 1000,
        sequence_number=sequence,
    )


@pytest.fixture
def fake_ws():
    return FakeWebSocket()


@pytest.fixture
def fake_connect(fake_ws):
    return FakeConnect(fake_ws)


@pytest.fixture
def events():
    """Collects adapter callbacks as (kind, payload) tuples."""
    received: list[tuple] = []
    return received


@pytest.fixture
def callbacks(events):
    return {
        "on_partial_result": lambda item: events.append(("partial", item)),
        "on_final_result": lambda item: events.append(("final", item)),
        "on_error": lambda kind, message: events.append(("error", kind, message)),
    }


@pytest.fixture(name="wait_until")
def wait_until_fixture():
    return wait_until


@pytest.fixture(name="make_chunk")
def make_chunk_fixture():
    return make_chunk
