"""MediaEngine implementation backed by aiortc.

aiortc gathers candidates before ``setLocalDescription`` returns and embeds
them in the local SDP, so they are announced to the listener by scanning the
``a=candidate:`` lines of the applied offer or answer.
"""

import asyncio
import logging
import time
from typing import Any

import numpy as np
from aiortc import RTCPeerConnection, RTCSessionDescription
from aiortc.mediastreams import MediaStreamError, MediaStreamTrack
from aiortc.rtcconfiguration import RTCConfiguration, RTCIceServer
from aiortc.sdp import candidate_from_sdp

from ..audio.types import AudioFrame
from .engine import MediaEngineListener
from .types import IceCandidate

logger = logging.getLogger(__name__)


def candidates_from_sdp(sdp: str) -> list[IceCandidate]:
    """Extract ICE candidates from an SDP blob in the order they appear."""
    candidates: list[IceCandidate] = []
    mline_index = -1
    mid: str | None = None
    ufrag: str | None = None
    session_ufrag: str | None = None

    for line in sdp.splitlines():
        line = line.strip()
        if line.startswith("m="):
            mline_index += 1
            mid = None
            ufrag = session_ufrag
        elif line.startswith("a=mid:"):
            mid = line[len("a=mid:") :]
        elif line.startswith("a=ice-ufrag:"):
            if mline_index < 0:
                session_ufrag = line[len("a=ice-ufrag:") :]
            else:
                ufrag = line[len("a=ice-ufrag:") :]
        elif line.startswith("a=candidate:"):
            candidates.append(
                IceCandidate(
                    candidate=line[2:],
                    sdp_mid=mid,
                    sdp_mline_index=max(mline_index, 0),
                    username_fragment=ufrag or session_ufrag,
                )
            )
    return candidates


def frame_to_pcm(frame: Any) -> tuple[np.ndarray, int]:
    """Decode an ``av.AudioFrame`` into interleaved int16 samples and a channel count."""
    channels = len(frame.layout.channels)
    pcm = frame.to_ndarray()
    if frame.format.is_planar:
        pcm = pcm.T
    pcm = pcm.reshape(-1)
    if pcm.dtype != np.int16:
        pcm = np.clip(pcm.astype(np.float32) * 32767, -32768, 32767).astype(np.int16)
    return pcm, channels


class AiortcMediaEngine:
    """Receive-only audio peer connection.

    Args:
        peer_factory: Callable returning an RTCPeerConnection for a config

    """

    def __init__(self, peer_factory=RTCPeerConnection):
        self._peer_factory = peer_factory
        self._pc: RTCPeerConnection | None = None
        self._listener: MediaEngineListener | None = None
        self._tracks: dict[str, MediaStreamTrack] = {}
        self._readers: dict[str, asyncio.Task] = {}
        self._closing = False

    @property
    def has_remote_description(self) -> bool:
        return self._pc is not None and self._pc.remoteDescription is not None

    def bind(self, listener: MediaEngineListener) -> None:
        self._listener = listener

    def _require_pc(self) -> RTCPeerConnection:
        if self._pc is None:
            raise RuntimeError("Peer connection not created yet")
        return self._pc

    def _create_pc(self, ice_servers: list[dict[str, Any]]) -> RTCPeerConnection:
        servers = [
            RTCIceServer(urls=server["urls"], username=server.get("username"), credential=server.get("credential"))
            for server in ice_servers
        ]
        pc = self._peer_factory(configuration=RTCConfiguration(iceServers=servers or None))

        @pc.on("iceconnectionstatechange")
        async def on_iceconnectionstatechange():
            logger.debug(f"ICE connection state: {pc.iceConnectionState}")
            if self._listener is not None:
                self._listener.handle_connectivity_change(pc.iceConnectionState)

        @pc.on("track")
        def on_track(track):
            if track.kind != "audio":
                logger.debug(f"Ignoring {track.kind} track {track.id}")
                return
            self._tracks[track.id] = track

            @track.on("ended")
            def on_ended():
                if track.id not in self._readers and self._listener is not None and not self._closing:
                    self._listener.handle_track_ended(track.id)

            if self._listener is not None:
                self._listener.handle_track(track.id)

        pc.addTransceiver("audio", direction="recvonly")
        return pc

    def _announce_local_candidates(self) -> None:
        pc = self._require_pc()
        if self._listener is None or pc.localDescription is None:
            return
        for candidate in candidates_from_sdp(pc.localDescription.sdp):
            self._listener.handle_local_candidate(candidate)

    async def create_offer(self, ice_servers: list[dict[str, Any]]) -> str:
        if self._pc is None:
            self._pc = self._create_pc(ice_servers)
        offer = await self._pc.createOffer()
        await self._pc.setLocalDescription(offer)
        self._announce_local_candidates()
        return self._pc.localDescription.sdp

    async def set_remote_description(self, sdp_type: str, sdp: str) -> None:
        await self._require_pc().setRemoteDescription(RTCSessionDescription(sdp=sdp, type=sdp_type))

    async def create_answer(self) -> str:
        pc = self._require_pc()
        answer = await pc.createAnswer()
        await pc.setLocalDescription(answer)
        self._announce_local_candidates()
        return pc.localDescription.sdp

    async def add_ice_candidate(self, candidate: IceCandidate) -> None:
        line = candidate.candidate
        if not line:
            return
        if line.startswith("candidate:"):
            line = line.split(":", 1)[1]
        rtc_candidate = candidate_from_sdp(line)
        rtc_candidate.sdpMid = candidate.sdp_mid
        rtc_candidate.sdpMLineIndex = candidate.sdp_mline_index
        await self._require_pc().addIceCandidate(rtc_candidate)

    def attach_track(self, source_id: str) -> None:
        track = self._tracks.get(source_id)
        if track is None:
            raise KeyError(f"Unknown track {source_id}")
        if source_id not in self._readers:
            self._readers[source_id] = asyncio.create_task(self._read_track(source_id, track))

    async def _read_track(self, source_id: str, track: MediaStreamTrack) -> None:
        try:
            while True:
                frame = await track.recv()
                samples, channels = frame_to_pcm(frame)
                if self._listener is not None:
                    self._listener.handle_audio_frame(
                        AudioFrame(
                            source_id=source_id,
                            samples=samples,
                            sample_rate=frame.sample_rate,
                            channel_count=channels,
                            received_at_ms=time.time() * 1000,
                        )
                    )
        except MediaStreamError:
            logger.debug(f"Track {source_id} stopped producing frames")
        finally:
            self._readers.pop(source_id, None)
            if self._listener is not None and not self._closing:
                self._listener.handle_track_ended(source_id)

    async def close(self) -> None:
        self._closing = True
        readers = list(self._readers.values())
        for task in readers:
            task.cancel()
        for task in readers:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._readers.clear()
        self._tracks.clear()
        if self._pc is not None:
            await self._pc.close()
            self._pc = None
