"""WebRTC media session handling on top of a MediaEngine.

Inbound tracks and frames can arrive before the transport is connected.
Both are held in pending queues and released by the transition into the
connected state, so no early audio is lost or delivered half-attached.
"""

import logging
import time
from collections.abc import Callable
from typing import Any

from ..audio.types import AudioFrame
from ..core.exceptions import NegotiationError
from ..core.queues import PendingQueue
from .engine import MediaEngine
from .types import CONNECTIVITY_STATES, IceCandidate, MediaState

logger = logging.getLogger(__name__)

DEFAULT_STUN_SERVERS = ["stun:stun.l.google.com:19302", "stun:stun1.l.google.com:19302"]

LocalCandidateCallback = Callable[[IceCandidate], None]
AudioFrameCallback = Callable[[AudioFrame], None]
MediaStateCallback = Callable[[MediaState], None]
TrackEndedCallback = Callable[[str], None]


class MediaSessionHandler:
    """Owns one peer session: negotiation, remote candidates and frame delivery.

    Args:
        engine: WebRTC engine implementation
        on_local_candidate: Called for every locally gathered candidate
        on_audio_frame: Called per decoded frame once connected
        on_state_change: Called on every MediaState transition
        on_track_ended: Called with the source id when a track ends
        stun_servers: Fallback ICE servers when the bridge supplies none
        max_pending_frames: Bound on frames held before connectivity

    """

    def __init__(
        self,
        engine: MediaEngine,
        on_local_candidate: LocalCandidateCallback | None = None,
        on_audio_frame: AudioFrameCallback | None = None,
        on_state_change: MediaStateCallback | None = None,
        on_track_ended: TrackEndedCallback | None = None,
        stun_servers: list[str] | None = None,
        max_pending_frames: int = 500,
    ):
        self.engine = engine
        self.on_local_candidate = on_local_candidate
        self.on_audio_frame = on_audio_frame
        self.on_state_change = on_state_change
        self.on_track_ended = on_track_ended
        self.stun_servers = stun_servers if stun_servers is not None else list(DEFAULT_STUN_SERVERS)

        self.state = MediaState.NEW
        self._pending_tracks: PendingQueue[str] = PendingQueue()
        self._pending_frames: PendingQueue[AudioFrame] = PendingQueue(maxlen=max_pending_frames)
        self._attached_tracks: set[str] = set()
        self._frames_delivered: dict[str, int] = {}
        self.engine.bind(self)

    @property
    def is_connected(self) -> bool:
        return self.state == MediaState.CONNECTED

    @property
    def attached_tracks(self) -> set[str]:
        return set(self._attached_tracks)

    @property
    def pending_track_count(self) -> int:
        return len(self._pending_tracks)

    @property
    def pending_frame_count(self) -> int:
        return len(self._pending_frames)

    def frames_delivered(self, source_id: str) -> int:
        return self._frames_delivered.get(source_id, 0)

    def _update_state(self, new_state: MediaState) -> None:
        if new_state == self.state:
            return
        old_state = self.state
        self.state = new_state
        logger.info(f"Media state: {old_state.value} -> {new_state.value}")

        if new_state == MediaState.CONNECTED:
            self._release_pending()

        if self.on_state_change:
            try:
                self.on_state_change(new_state)
            except Exception as e:
                logger.error(f"Error in media state callback: {e}")

    def _ice_servers(self, turn_servers: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
        if turn_servers:
            return list(turn_servers)
        return [{"urls": url} for url in self.stun_servers]

    async def create_offer(self, turn_servers: list[dict[str, Any]] | None = None) -> str:
        """Start negotiation and return the local offer SDP."""
        if self.state.is_terminal:
            raise NegotiationError(f"Cannot create offer in {self.state.value} state")
        self._update_state(MediaState.NEGOTIATING)
        try:
            return await self.engine.create_offer(self._ice_servers(turn_servers))
        except Exception as e:
            self._update_state(MediaState.FAILED)
            raise NegotiationError(f"Failed to create offer: {e}") from e

    async def set_remote_answer(self, sdp: str) -> None:
        try:
            await self.engine.set_remote_description("answer", sdp)
        except Exception as e:
            self._update_state(MediaState.FAILED)
            raise NegotiationError(f"Failed to apply remote answer: {e}") from e
        logger.debug("Remote answer applied")

    async def handle_remote_offer(self, sdp: str) -> str:
        """Apply a bridge-initiated renegotiation offer and return our answer SDP."""
        if self.state.is_terminal:
            raise NegotiationError(f"Cannot renegotiate in {self.state.value} state")
        try:
            await self.engine.set_remote_description("offer", sdp)
            answer = await self.engine.create_answer()
        except Exception as e:
            raise NegotiationError(f"Renegotiation failed: {e}") from e
        logger.info("Renegotiation answer created")
        return answer

    async def add_remote_candidate(self, candidate: IceCandidate) -> bool:
        """Apply a remote candidate; discarded until a remote description exists.

        Returns:
            True if the candidate was handed to the engine

        """
        if not self.engine.has_remote_description:
            logger.debug("Discarding remote ICE candidate received before remote description")
            return False
        try:
            await self.engine.add_ice_candidate(candidate)
        except Exception as e:
            logger.warning(f"Rejected remote ICE candidate: {e}")
            return False
        return True

    async def close(self) -> None:
        if self.state == MediaState.CLOSED:
            return
        self._pending_tracks.clear()
        self._pending_frames.clear()
        try:
            await self.engine.close()
        finally:
            self._attached_tracks.clear()
            self._update_state(MediaState.CLOSED)

    # Engine listener interface

    def handle_local_candidate(self, candidate: IceCandidate) -> None:
        if self.on_local_candidate is None:
            return
        try:
            self.on_local_candidate(candidate)
        except Exception as e:
            logger.error(f"Error in local candidate callback: {e}")

    def handle_track(self, source_id: str) -> None:
        if source_id in self._attached_tracks:
            return
        if self.is_connected:
            self._attach(source_id)
        else:
            logger.info(f"Holding track {source_id} until media is connected")
            self._pending_tracks.push(source_id)

    def handle_connectivity_change(self, state: str) -> None:
        new_state = CONNECTIVITY_STATES.get(state)
        if new_state is None:
            logger.debug(f"Ignoring connectivity state {state!r}")
            return
        if self.state.is_terminal:
            return
        if new_state == MediaState.NEGOTIATING and self.state != MediaState.NEW:
            return
        if new_state == MediaState.DISCONNECTED:
            logger.warning("Media connectivity lost, waiting for recovery")
        elif new_state == MediaState.FAILED:
            logger.error("Media connectivity failed")
        self._update_state(new_state)

    def handle_audio_frame(self, frame: AudioFrame) -> None:
        if not frame.received_at_ms:
            frame.received_at_ms = time.time() * 1000
        if not self.is_connected:
            self._pending_frames.push(frame)
            return
        self._deliver(frame)

    def handle_track_ended(self, source_id: str) -> None:
        self._attached_tracks.discard(source_id)
        logger.info(f"Track ended: {source_id}")
        if self.on_track_ended:
            try:
                self.on_track_ended(source_id)
            except Exception as e:
                logger.error(f"Error in track-ended callback: {e}")

    def _attach(self, source_id: str) -> None:
        self._attached_tracks.add(source_id)
        self.engine.attach_track(source_id)
        logger.info(f"Attached audio track {source_id}")

    def _release_pending(self) -> None:
        for source_id in self._pending_tracks.drain():
            if source_id not in self._attached_tracks:
                self._attach(source_id)

        held = self._pending_frames
        if held.dropped:
            logger.warning(f"Dropped {held.dropped} early audio frames while waiting for connectivity")
        for frame in held.drain():
            self._deliver(frame)

    def _deliver(self, frame: AudioFrame) -> None:
        self._frames_delivered[frame.source_id] = self._frames_delivered.get(frame.source_id, 0) + 1
        if self.on_audio_frame is None:
            return
        try:
            self.on_audio_frame(frame)
        except Exception as e:
            logger.error(f"Error in audio frame callback: {e}")
