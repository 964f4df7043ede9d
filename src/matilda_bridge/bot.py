"""Conference transcriber: wires session, capture, attribution and transcription.

Data flow::

    media frames -> AudioCapturePipeline -> speaker-tagged AudioChunk
        -> bounded chunk queue -> TranscriptionStreamAdapter -> TranscriptSink

Frame delivery and chunking run synchronously on the event loop. Provider
sends happen on a separate worker behind the chunk queue, so a slow provider
drops the oldest queued chunks instead of stalling capture.
"""

import asyncio
from typing import Any, Protocol

from .audio.capture import AudioCapturePipeline
from .audio.config import CaptureSettings
from .audio.types import AudioChunk
from .core.config import ConfigLoader, get_config
from .core.exceptions import BridgeError, ProviderError
from .core.logging import setup_logging
from .media.handler import MediaSessionHandler
from .media.types import MediaState
from .session.config import ConferenceSettings
from .session.orchestrator import ConferenceSession, SessionState
from .signaling.client import SignalingClient
from .speakers.tracker import SpeakerAttributionTracker
from .transcription.base import TranscriptionStreamAdapter
from .transcription.factory import create_adapter
from .transcription.ordering import TranscriptOrderer
from .transcription.types import TranscriptionItem

logger = setup_logging(__name__)


class TranscriptSink(Protocol):
    """Receives everything the transcriber produces."""

    def on_chunk(self, chunk: AudioChunk) -> None: ...

    def on_transcription(self, item: TranscriptionItem) -> None: ...

    def on_error(self, kind: str, message: str) -> None: ...


class LoggingTranscriptSink:
    """Default sink that writes final transcripts and errors to the log."""

    def on_chunk(self, chunk: AudioChunk) -> None:
        speaker = chunk.speaker.display_name if chunk.speaker else "-"
        logger.debug(f"Chunk #{chunk.sequence_number} from {chunk.source_id} ({speaker})")

    def on_transcription(self, item: TranscriptionItem) -> None:
        if item.is_final:
            logger.info(f"Transcript: {item.text}")

    def on_error(self, kind: str, message: str) -> None:
        logger.warning(f"Transcriber error ({kind}): {message}")


class ConferenceTranscriber:
    """Joins a conference and streams its audio to a transcription provider.

    Args:
        session: Conference session (owns signaling and media)
        pipeline: Audio capture pipeline
        tracker: Speaker attribution tracker
        adapter: Transcription provider adapter
        sink: Receives chunks, transcription items and errors
        chunk_queue_size: Chunks held for the provider before dropping the oldest
        commit_interval_s: Periodic commit cadence when provider VAD is off (0 disables)

    """

    def __init__(
        self,
        session: ConferenceSession,
        pipeline: AudioCapturePipeline,
        tracker: SpeakerAttributionTracker,
        adapter: TranscriptionStreamAdapter,
        sink: TranscriptSink | None = None,
        chunk_queue_size: int = 64,
        commit_interval_s: float = 0.0,
    ):
        self.session = session
        self.pipeline = pipeline
        self.tracker = tracker
        self.adapter = adapter
        self.sink: TranscriptSink = sink or LoggingTranscriptSink()
        self.commit_interval_s = commit_interval_s
        self.orderer = TranscriptOrderer()
        self.dropped_chunks = 0

        self._chunks: asyncio.Queue[AudioChunk | None] = asyncio.Queue(maxsize=chunk_queue_size)
        self._worker_task: asyncio.Task | None = None
        self._commit_task: asyncio.Task | None = None
        self._stop_task: asyncio.Task | None = None
        self._running = False

        pipeline.speaker_lookup = tracker.speaker_at
        pipeline.on_chunk_ready = self._on_chunk_ready
        session.media.on_audio_frame = pipeline.process_frame
        session.media.on_track_ended = pipeline.stop_source
        session.media.on_state_change = self._on_media_state
        session.on_participant_event = tracker.on_participant_event
        session.on_error = self._on_session_error
        session.on_state_change = self._on_session_state
        adapter.on_partial_result = self._on_transcription
        adapter.on_final_result = self._on_transcription
        adapter.on_error = self._report_error

    @classmethod
    def from_config(
        cls,
        config: ConfigLoader | None = None,
        sink: TranscriptSink | None = None,
        engine: Any = None,
        provider: str | None = None,
    ) -> "ConferenceTranscriber":
        """Build a transcriber from the Matilda config file and environment.

        Args:
            config: Config loader (defaults to the global one)
            sink: Transcript sink (defaults to logging)
            engine: MediaEngine implementation (defaults to aiortc)
            provider: Transcription provider override

        """
        config = config or get_config()
        conference = ConferenceSettings.from_config(config)
        capture = CaptureSettings.from_config(config)

        if engine is None:
            from .media.aiortc_engine import AiortcMediaEngine

            engine = AiortcMediaEngine()

        signaling = SignalingClient(
            conference.node_address,
            conference.conference_alias,
            call_tag=conference.call_tag,
            scheme=conference.scheme,
            request_timeout=conference.request_timeout_s,
            poll_timeout=conference.poll_timeout_s,
            verify_ssl=conference.verify_ssl,
        )
        media = MediaSessionHandler(
            engine,
            stun_servers=conference.stun_servers or None,
            max_pending_frames=int(config.get("media.max_pending_frames", 500)),
        )
        session = ConferenceSession(signaling, media, conference)
        return cls(
            session=session,
            pipeline=AudioCapturePipeline(capture),
            tracker=SpeakerAttributionTracker(),
            adapter=create_adapter(provider, config),
            sink=sink,
            chunk_queue_size=capture.chunk_queue_size,
            commit_interval_s=float(config.get("transcription.commit_interval_s", 0.0)),
        )

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Connect the provider, then join the conference."""
        if self._running:
            return
        await self.adapter.connect()
        self._worker_task = asyncio.create_task(self._chunk_worker())
        try:
            session = await self.session.connect()
        except Exception:
            await self._stop_worker()
            await self.adapter.disconnect()
            await self.session.signaling.close()
            raise

        if session.participant_id:
            self.tracker.ignore(session.participant_id)
        if self.commit_interval_s > 0 and not self.adapter.vad_enabled:
            self._commit_task = asyncio.create_task(self._commit_loop())
        self._running = True
        logger.info("Conference transcriber started")

    async def stop(self) -> None:
        """Leave the conference, flush remaining audio and close the provider."""
        if not self._running:
            return
        self._running = False

        if self._commit_task is not None:
            self._commit_task.cancel()
            try:
                await self._commit_task
            except asyncio.CancelledError:
                pass
            self._commit_task = None

        await self.session.disconnect()
        self.pipeline.flush()
        await self._stop_worker()
        await self.adapter.disconnect()
        await self.session.signaling.close()
        logger.info("Conference transcriber stopped")

    def _on_chunk_ready(self, chunk: AudioChunk) -> None:
        try:
            self.sink.on_chunk(chunk)
        except Exception as e:
            logger.error(f"Error in sink chunk handler: {e}")

        try:
            self._chunks.put_nowait(chunk)
        except asyncio.QueueFull:
            self._chunks.get_nowait()
            self._chunks.put_nowait(chunk)
            self.dropped_chunks += 1
            logger.warning(f"Transcription provider falling behind, dropped {self.dropped_chunks} chunk(s)")

    async def _chunk_worker(self) -> None:
        while True:
            chunk = await self._chunks.get()
            if chunk is None:
                break
            try:
                await self.adapter.process_audio_chunk(chunk)
            except ProviderError as e:
                self._report_error(e.kind, e.message)
            except Exception as e:
                logger.error(f"Unexpected error sending chunk #{chunk.sequence_number}: {e}")

    async def _stop_worker(self) -> None:
        if self._worker_task is None:
            return
        if not self._worker_task.done():
            await self._chunks.put(None)
        try:
            await asyncio.wait_for(self._worker_task, timeout=5.0)
        except TimeoutError:
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
        self._worker_task = None

    async def _commit_loop(self) -> None:
        while True:
            await asyncio.sleep(self.commit_interval_s)
            try:
                await self.adapter.commit_buffer()
            except ProviderError as e:
                self._report_error(e.kind, e.message)

    def _on_transcription(self, item: TranscriptionItem) -> None:
        self.orderer.add(item)
        try:
            self.sink.on_transcription(item)
        except Exception as e:
            logger.error(f"Error in sink transcription handler: {e}")

    def _on_media_state(self, state: MediaState) -> None:
        if state == MediaState.FAILED:
            self._report_error("transport_failed", "Media connectivity failed")
        elif state == MediaState.DISCONNECTED:
            self._report_error("transport_disconnected", "Media connectivity lost, waiting for recovery")

    def _on_session_state(self, state: SessionState) -> None:
        if state == SessionState.CLOSED and self._running and self._stop_task is None:
            logger.info("Conference session closed, stopping transcriber")
            self._stop_task = asyncio.create_task(self.stop())
            self._stop_task.add_done_callback(self._on_stop_done)

    def _on_stop_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Stopping after session close failed: {error}")
            self._report_error("stop_failed", str(error))

    def _on_session_error(self, error: BridgeError) -> None:
        self._report_error(type(error).__name__, str(error))

    def _report_error(self, kind: str, message: str) -> None:
        try:
            self.sink.on_error(kind, message)
        except Exception as e:
            logger.error(f"Error in sink error handler: {e}")

    def transcript(self) -> str:
        return self.orderer.text()

    def get_stats(self) -> dict[str, Any]:
        return {
            "session_state": self.session.state.value,
            "media_state": self.session.media.state.value,
            "capture": self.pipeline.get_stats(),
            "provider": self.adapter.stats.to_dict(),
            "speakers": self.tracker.get_statistics(),
            "dropped_chunks": self.dropped_chunks,
        }
