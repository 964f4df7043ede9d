"""Participant and speaking-interval records kept by the attribution tracker."""

from dataclasses import dataclass

UNKNOWN_SPEAKER_ID = "unknown"
UNKNOWN_SPEAKER_NAME = "Unknown Speaker"

# Attribution confidence levels
INTERVAL_MATCH_CONFIDENCE = 0.9
CURRENT_SPEAKER_CONFIDENCE = 0.5


@dataclass
class Participant:
    """A conference participant as seen through bridge events."""

    id: str
    display_name: str = "Unknown"
    role: str = "guest"
    joined_at_ms: float = 0.0
    is_speaking: bool = False
    is_muted: bool = False
    speaking_started_at_ms: float | None = None
    total_speaking_ms: float = 0.0
    last_spoke_at_ms: float | None = None


@dataclass
class SpeakingInterval:
    """One turn of speech; ``end_ms`` stays None while the turn is open."""

    participant_id: str
    display_name: str
    start_ms: float
    end_ms: float | None = None

    @property
    def is_open(self) -> bool:
        return self.end_ms is None

    @property
    def duration_ms(self) -> float | None:
        if self.end_ms is None:
            return None
        return self.end_ms - self.start_ms

    def contains(self, timestamp_ms: float) -> bool:
        """Half-open containment: ``start <= t < end`` (open intervals have no end)."""
        if timestamp_ms < self.start_ms:
            return False
        return self.end_ms is None or timestamp_ms < self.end_ms


@dataclass(frozen=True)
class SpeakerAttribution:
    """Who was speaking at a point in time, and how sure we are."""

    participant_id: str
    display_name: str
    confidence: float

    @property
    def is_unknown(self) -> bool:
        return self.participant_id == UNKNOWN_SPEAKER_ID

    def to_dict(self) -> dict:
        return {
            "participant_id": self.participant_id,
            "display_name": self.display_name,
            "confidence": self.confidence,
        }


UNKNOWN_SPEAKER = SpeakerAttribution(UNKNOWN_SPEAKER_ID, UNKNOWN_SPEAKER_NAME, 0.0)
