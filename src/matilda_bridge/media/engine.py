"""Contract between the media session handler and a WebRTC engine.

The engine owns ICE/DTLS/SRTP, codecs and jitter buffering. The handler only
needs the operations below plus the listener notifications.
"""

from typing import Any, Protocol

from ..audio.types import AudioFrame
from .types import IceCandidate


class MediaEngineListener(Protocol):
    """Notifications an engine delivers, always on the event loop thread."""

    def handle_local_candidate(self, candidate: IceCandidate) -> None: ...

    def handle_track(self, source_id: str) -> None: ...

    def handle_connectivity_change(self, state: str) -> None: ...

    def handle_audio_frame(self, frame: AudioFrame) -> None: ...

    def handle_track_ended(self, source_id: str) -> None: ...


class MediaEngine(Protocol):
    """A receive-only audio WebRTC peer connection."""

    @property
    def has_remote_description(self) -> bool: ...

    def bind(self, listener: MediaEngineListener) -> None:
        """Register the listener before any other call."""
        ...

    async def create_offer(self, ice_servers: list[dict[str, Any]]) -> str:
        """Create an offer, apply it locally and return its SDP."""
        ...

    async def set_remote_description(self, sdp_type: str, sdp: str) -> None: ...

    async def create_answer(self) -> str:
        """Create an answer to the applied remote offer, apply it locally and return its SDP."""
        ...

    async def add_ice_candidate(self, candidate: IceCandidate) -> None: ...

    def attach_track(self, source_id: str) -> None:
        """Start delivering decoded frames for a previously announced track."""
        ...

    async def close(self) -> None: ...
