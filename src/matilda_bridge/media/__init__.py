"""WebRTC media session handling."""

from .handler import MediaSessionHandler
from .types import IceCandidate, MediaState

__all__ = ["IceCandidate", "MediaSessionHandler", "MediaState"]
