"""Speaker attribution for captured conference audio."""

from .tracker import SpeakerAttributionTracker
from .types import UNKNOWN_SPEAKER, Participant, SpeakerAttribution, SpeakingInterval

__all__ = ["SpeakerAttributionTracker", "Participant", "SpeakerAttribution", "SpeakingInterval", "UNKNOWN_SPEAKER"]
