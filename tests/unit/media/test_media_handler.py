"""Unit tests for MediaSessionHandler."""

from unittest.mock import MagicMock

import numpy as np
import pytest

from matilda_bridge.audio.types import AudioFrame
from matilda_bridge.core.exceptions import NegotiationError
from matilda_bridge.core.queues import PendingQueue
from matilda_bridge.media.handler import MediaSessionHandler
from matilda_bridge.media.types import IceCandidate, MediaState


class FakeEngine:
    """Scriptable MediaEngine double that records calls."""

    def __init__(self):
        self.listener = None
        self.has_remote_description = False
        self.offer_ice_servers = None
        self.remote_descriptions: list[tuple[str, str]] = []
        self.candidates: list[IceCandidate] = []
        self.attached: list[str] = []
        self.closed = False
        self.fail_offer = False

    def bind(self, listener):
        self.listener = listener

    async def create_offer(self, ice_servers):
        if self.fail_offer:
            raise RuntimeError("no codecs")
        self.offer_ice_servers = ice_servers
        return "v=0 offer"

    async def set_remote_description(self, sdp_type, sdp):
        self.remote_descriptions.append((sdp_type, sdp))
        self.has_remote_description = True

    async def create_answer(self):
        return "v=0 answer"

    async def add_ice_candidate(self, candidate):
        self.candidates.append(candidate)

    def attach_track(self, source_id):
        self.attached.append(source_id)

    async def close(self):
        self.closed = True


def _frame(source_id="t1"):
    return AudioFrame(source_id, np.zeros(480, dtype=np.int16), 48000, received_at_ms=1.0)


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def frames():
    return []


@pytest.fixture
def states():
    return []


@pytest.fixture
def handler(engine, frames, states):
    return MediaSessionHandler(
        engine,
        on_audio_frame=frames.append,
        on_state_change=states.append,
        max_pending_frames=3,
    )


class TestPendingQueue:
    """Test the bounded holding queue."""

    def test_drain_in_order(self):
        queue = PendingQueue()
        for i in range(3):
            queue.push(i)
        assert list(queue) == [0, 1, 2]
        assert queue.drain() == [0, 1, 2]
        assert not queue
        assert queue.drain() == []

    def test_bound_drops_oldest(self):
        queue = PendingQueue(maxlen=2)
        for i in range(5):
            queue.push(i)
        assert queue.dropped == 3
        assert queue.drain() == [3, 4]
        assert queue.dropped == 0


class TestNegotiation:
    """Test offer/answer handling."""

    @pytest.mark.asyncio
    async def test_binds_listener(self, handler, engine):
        assert engine.listener is handler

    @pytest.mark.asyncio
    async def test_offer_uses_stun_fallback(self, handler, engine, states):
        sdp = await handler.create_offer()

        assert sdp == "v=0 offer"
        assert engine.offer_ice_servers == [
            {"urls": "stun:stun.l.google.com:19302"},
            {"urls": "stun:stun1.l.google.com:19302"},
        ]
        assert handler.state == MediaState.NEGOTIATING
        assert states == [MediaState.NEGOTIATING]

    @pytest.mark.asyncio
    async def test_offer_uses_bridge_turn_servers(self, handler, engine):
        turn = [{"urls": ["turn:turn.example.com"], "username": "u", "credential": "c"}]
        await handler.create_offer(turn)
        assert engine.offer_ice_servers == turn

    @pytest.mark.asyncio
    async def test_offer_failure_is_terminal(self, handler, engine):
        engine.fail_offer = True

        with pytest.raises(NegotiationError):
            await handler.create_offer()

        assert handler.state == MediaState.FAILED
        with pytest.raises(NegotiationError):
            await handler.create_offer()

    @pytest.mark.asyncio
    async def test_remote_answer(self, handler, engine):
        await handler.create_offer()
        await handler.set_remote_answer("v=0 bridge")
        assert engine.remote_descriptions == [("answer", "v=0 bridge")]

    @pytest.mark.asyncio
    async def test_renegotiation(self, handler, engine):
        await handler.create_offer()
        answer = await handler.handle_remote_offer("v=0 new offer")
        assert answer == "v=0 answer"
        assert engine.remote_descriptions == [("offer", "v=0 new offer")]


class TestRemoteCandidates:
    """Test remote ICE candidate handling."""

    @pytest.mark.asyncio
    async def test_discarded_before_remote_description(self, handler, engine):
        candidate = IceCandidate("candidate:1 1 udp 1 10.0.0.1 5000 typ host", sdp_mid="0")

        assert await handler.add_remote_candidate(candidate) is False
        assert engine.candidates == []

    @pytest.mark.asyncio
    async def test_applied_after_remote_description(self, handler, engine):
        await handler.set_remote_answer("v=0 bridge")
        candidate = IceCandidate("candidate:1 1 udp 1 10.0.0.1 5000 typ host", sdp_mid="0")

        assert await handler.add_remote_candidate(candidate) is True
        assert engine.candidates == [candidate]


class TestConnectivity:
    """Test state transitions and early track/frame holding."""

    def test_local_candidates_forwarded(self, engine):
        received = []
        MediaSessionHandler(engine, on_local_candidate=received.append)
        candidate = IceCandidate("candidate:1 1 udp 1 10.0.0.1 5000 typ host")

        engine.listener.handle_local_candidate(candidate)

        assert received == [candidate]

    def test_track_held_until_connected(self, handler, engine):
        engine.listener.handle_track("t1")
        assert engine.attached == []
        assert handler.pending_track_count == 1

        engine.listener.handle_connectivity_change("connected")

        assert engine.attached == ["t1"]
        assert handler.attached_tracks == {"t1"}
        assert handler.pending_track_count == 0

    def test_track_attached_immediately_when_connected(self, handler, engine):
        engine.listener.handle_connectivity_change("connected")
        engine.listener.handle_track("t1")
        engine.listener.handle_track("t1")
        assert engine.attached == ["t1"]

    def test_early_frames_released_in_order(self, handler, engine, frames):
        early = [_frame(), _frame(), _frame("t2")]
        for frame in early:
            engine.listener.handle_audio_frame(frame)
        assert frames == []
        assert handler.pending_frame_count == 3

        engine.listener.handle_connectivity_change("completed")

        assert frames == early
        assert handler.frames_delivered("t1") == 2
        assert handler.frames_delivered("t2") == 1

    def test_early_frames_bounded(self, handler, engine, frames):
        held = [_frame() for _ in range(5)]
        for frame in held:
            engine.listener.handle_audio_frame(frame)

        engine.listener.handle_connectivity_change("connected")

        assert frames == held[2:]

    def test_frame_without_timestamp_stamped(self, handler, engine, frames):
        engine.listener.handle_connectivity_change("connected")
        frame = AudioFrame("t1", np.zeros(10, dtype=np.int16), 48000)

        engine.listener.handle_audio_frame(frame)

        assert frames[0].received_at_ms > 0

    def test_failed_is_terminal(self, handler, engine, states):
        engine.listener.handle_connectivity_change("connected")
        engine.listener.handle_connectivity_change("failed")
        engine.listener.handle_connectivity_change("connected")

        assert handler.state == MediaState.FAILED
        assert states == [MediaState.CONNECTED, MediaState.FAILED]

    def test_disconnected_can_recover(self, handler, engine, states):
        engine.listener.handle_connectivity_change("connected")
        engine.listener.handle_connectivity_change("disconnected")
        engine.listener.handle_connectivity_change("connected")

        assert states == [MediaState.CONNECTED, MediaState.DISCONNECTED, MediaState.CONNECTED]

    def test_unknown_state_ignored(self, handler, engine, states):
        engine.listener.handle_connectivity_change("new")
        assert states == []

    def test_callback_errors_isolated(self, engine):
        handler = MediaSessionHandler(engine, on_audio_frame=MagicMock(side_effect=RuntimeError("boom")))
        engine.listener.handle_connectivity_change("connected")
        engine.listener.handle_audio_frame(_frame())
        assert handler.frames_delivered("t1") == 1

    def test_track_ended_forwarded(self, engine):
        ended = []
        handler = MediaSessionHandler(engine, on_track_ended=ended.append)
        engine.listener.handle_connectivity_change("connected")
        engine.listener.handle_track("t1")

        engine.listener.handle_track_ended("t1")

        assert ended == ["t1"]
        assert handler.attached_tracks == set()


class TestClose:
    """Test handler shutdown."""

    @pytest.mark.asyncio
    async def test_close(self, handler, engine, states):
        engine.listener.handle_track("t1")
        engine.listener.handle_audio_frame(_frame())

        await handler.close()
        await handler.close()

        assert engine.closed is True
        assert handler.state == MediaState.CLOSED
        assert handler.pending_frame_count == 0
        assert states == [MediaState.CLOSED]
