"""Media session states and ICE candidate records."""

from dataclasses import dataclass
from enum import Enum


class MediaState(Enum):
    """State of the WebRTC media session."""

    NEW = "new"
    NEGOTIATING = "negotiating"
    CONNECTED = "connected"
    # Connectivity lost; the transport may still recover on its own
    DISCONNECTED = "disconnected"
    FAILED = "failed"
    CLOSED = "closed"

    @property
    def is_terminal(self) -> bool:
        return self in (MediaState.FAILED, MediaState.CLOSED)


# Engine connectivity strings (ICE connection state) mapped onto MediaState
CONNECTIVITY_STATES: dict[str, MediaState] = {
    "checking": MediaState.NEGOTIATING,
    "connected": MediaState.CONNECTED,
    "completed": MediaState.CONNECTED,
    "disconnected": MediaState.DISCONNECTED,
    "failed": MediaState.FAILED,
    "closed": MediaState.CLOSED,
}


@dataclass(frozen=True)
class IceCandidate:
    """An ICE candidate line plus the media section it belongs to."""

    candidate: str
    sdp_mid: str | None = None
    sdp_mline_index: int | None = None
    username_fragment: str | None = None
