"""Unit tests for ConferenceTranscriber wiring and lifecycle."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest

from matilda_bridge.audio.capture import AudioCapturePipeline
from matilda_bridge.audio.config import CaptureSettings
from matilda_bridge.audio.types import AudioFrame
from matilda_bridge.bot import ConferenceTranscriber, LoggingTranscriptSink
from matilda_bridge.core.exceptions import AuthError, ProviderError
from matilda_bridge.media.types import MediaState
from matilda_bridge.session.orchestrator import SessionState
from matilda_bridge.speakers.tracker import SpeakerAttributionTracker
from matilda_bridge.transcription.types import AdapterStats, TranscriptionItem


class FakeAdapter:
    """Transcription adapter double recording chunks and lifecycle calls."""

    def __init__(self, log, vad_enabled=True):
        self.log = log
        self.vad_enabled = vad_enabled
        self.chunks = []
        self.commits = 0
        self.error: Exception | None = None
        self.stats = AdapterStats()
        self.on_partial_result = None
        self.on_final_result = None
        self.on_error = None

    async def connect(self):
        self.log.append("adapter.connect")

    async def disconnect(self):
        self.log.append("adapter.disconnect")

    async def process_audio_chunk(self, chunk):
        if self.error:
            raise self.error
        self.chunks.append(chunk)

    async def commit_buffer(self):
        self.commits += 1
        return True


async def _wait_until(predicate, timeout=1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


def _frame(samples=1600, at_ms=10_000.0):
    return AudioFrame("track-1", np.full(samples, 10, dtype=np.int16), 16000, received_at_ms=at_ms)


@pytest.fixture
def log():
    return []


@pytest.fixture
def session(log):
    return SimpleNamespace(
        state=SessionState.ACTIVE,
        media=SimpleNamespace(state=MediaState.CONNECTED),
        signaling=SimpleNamespace(close=AsyncMock(side_effect=lambda: log.append("signaling.close"))),
        connect=AsyncMock(side_effect=lambda: log.append("session.connect") or SimpleNamespace(participant_id="self-uuid")),
        disconnect=AsyncMock(side_effect=lambda: log.append("session.disconnect")),
    )


@pytest.fixture
def adapter(log):
    return FakeAdapter(log)


@pytest.fixture
def sink():
    return MagicMock()


@pytest.fixture
def transcriber(session, adapter, sink):
    return ConferenceTranscriber(
        session=session,
        pipeline=AudioCapturePipeline(CaptureSettings(chunk_duration_ms=100)),
        tracker=SpeakerAttributionTracker(clock=lambda: 10_000.0),
        adapter=adapter,
        sink=sink,
        chunk_queue_size=2,
    )


class TestWiring:
    """Test collaborator callbacks are connected."""

    def test_callbacks_wired(self, transcriber, session, adapter):
        assert session.media.on_audio_frame == transcriber.pipeline.process_frame
        assert session.media.on_track_ended == transcriber.pipeline.stop_source
        assert session.on_participant_event == transcriber.tracker.on_participant_event
        assert transcriber.pipeline.speaker_lookup == transcriber.tracker.speaker_at
        assert adapter.on_final_result is not None

    def test_default_sink(self, session, adapter):
        transcriber = ConferenceTranscriber(
            session, AudioCapturePipeline(), SpeakerAttributionTracker(), adapter
        )
        assert isinstance(transcriber.sink, LoggingTranscriptSink)


class TestLifecycle:
    """Test start and stop ordering."""

    @pytest.mark.asyncio
    async def test_start_connects_provider_before_session(self, transcriber, log):
        await transcriber.start()

        assert log == ["adapter.connect", "session.connect"]
        assert transcriber.is_running
        transcriber.tracker.on_participant_event({"event": "participant_create", "uuid": "self-uuid"})
        assert transcriber.tracker.get_participant("self-uuid") is None
        await transcriber.stop()

    @pytest.mark.asyncio
    async def test_start_failure_cleans_up(self, transcriber, session, log):
        session.connect.side_effect = AuthError("denied", status=403)

        with pytest.raises(AuthError):
            await transcriber.start()

        assert log == ["adapter.connect", "adapter.disconnect", "signaling.close"]
        assert transcriber.is_running is False

    @pytest.mark.asyncio
    async def test_stop_order_and_final_flush(self, transcriber, session, adapter, log):
        await transcriber.start()
        session.media.on_audio_frame(_frame(samples=400))
        log.clear()

        await transcriber.stop()
        await transcriber.stop()

        assert log == ["session.disconnect", "adapter.disconnect", "signaling.close"]
        assert [chunk.is_final for chunk in adapter.chunks] == [True]
        assert transcriber.is_running is False

    @pytest.mark.asyncio
    async def test_session_close_stops_transcriber(self, transcriber, session, log):
        await transcriber.start()

        session.on_state_change(SessionState.CLOSED)
        await _wait_until(lambda: "adapter.disconnect" in log)

        assert transcriber.is_running is False

    @pytest.mark.asyncio
    async def test_failed_stop_after_session_close_reported(self, transcriber, session, sink):
        await transcriber.start()
        session.signaling.close.side_effect = RuntimeError("socket already gone")

        session.on_state_change(SessionState.CLOSED)
        await _wait_until(lambda: sink.on_error.called)

        sink.on_error.assert_called_once_with("stop_failed", "socket already gone")
        assert transcriber._stop_task.done()


class TestAudioFlow:
    """Test frames flowing through to the provider."""

    @pytest.mark.asyncio
    async def test_chunk_tagged_and_sent(self, transcriber, session, adapter, sink):
        await transcriber.start()
        session.on_participant_event({"event": "participant_create", "uuid": "p1", "display_name": "Alice"})
        session.on_participant_event({"event": "participant_update", "uuid": "p1", "vad": 100})

        session.media.on_audio_frame(_frame())
        await _wait_until(lambda: adapter.chunks)

        (chunk,) = adapter.chunks
        assert chunk.speaker.participant_id == "p1"
        assert chunk.speaker.confidence == 0.9
        sink.on_chunk.assert_called_once_with(chunk)
        await transcriber.stop()

    @pytest.mark.asyncio
    async def test_slow_provider_drops_oldest(self, transcriber, session, adapter):
        await transcriber.start()

        session.media.on_audio_frame(_frame(samples=1600 * 5))
        await _wait_until(lambda: len(adapter.chunks) == 2)

        assert transcriber.dropped_chunks == 3
        assert [chunk.sequence_number for chunk in adapter.chunks] == [3, 4]
        await transcriber.stop()

    @pytest.mark.asyncio
    async def test_provider_error_reported(self, transcriber, session, adapter, sink):
        adapter.error = ProviderError("not_connected", "adapter is not connected")
        await transcriber.start()

        session.media.on_audio_frame(_frame())
        await _wait_until(lambda: sink.on_error.called)

        sink.on_error.assert_called_once_with("not_connected", "adapter is not connected")
        await transcriber.stop()

    @pytest.mark.asyncio
    async def test_commit_cadence_without_vad(self, session, sink, log):
        adapter = FakeAdapter(log, vad_enabled=False)
        transcriber = ConferenceTranscriber(
            session, AudioCapturePipeline(), SpeakerAttributionTracker(), adapter, sink=sink, commit_interval_s=0.01
        )
        await transcriber.start()

        await _wait_until(lambda: adapter.commits >= 2)
        await transcriber.stop()


class TestResultsAndErrors:
    """Test transcription results and error reporting."""

    @pytest.mark.asyncio
    async def test_transcripts_ordered(self, transcriber, adapter, sink):
        second = TranscriptionItem("b", "world.", previous_item_id="a", is_final=True)
        first = TranscriptionItem("a", "Hello", is_final=True)

        adapter.on_partial_result(TranscriptionItem("a", "Hel"))
        adapter.on_final_result(second)
        adapter.on_final_result(first)

        assert transcriber.transcript() == "Hello world."
        assert sink.on_transcription.call_count == 3

    def test_media_failure_reported(self, transcriber, session, sink):
        session.media.on_state_change(MediaState.FAILED)
        sink.on_error.assert_called_once_with("transport_failed", "Media connectivity failed")

    def test_session_error_reported(self, transcriber, session, sink):
        session.on_error(AuthError("token expired", status=403))
        sink.on_error.assert_called_once_with("AuthError", "token expired")

    def test_stats(self, transcriber):
        stats = transcriber.get_stats()
        assert stats["session_state"] == "active"
        assert stats["media_state"] == "connected"
        assert stats["dropped_chunks"] == 0
        assert set(stats) >= {"capture", "provider", "speakers"}
