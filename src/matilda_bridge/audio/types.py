"""Audio frame and chunk records passed between media, capture and transcription."""

import io
import wave
from dataclasses import dataclass

import numpy as np

from ..speakers.types import SpeakerAttribution


@dataclass
class AudioFrame:
    """One decoded PCM frame delivered by the media engine.

    ``samples`` holds interleaved int16 PCM when ``channel_count`` > 1.
    """

    source_id: str
    samples: np.ndarray
    sample_rate: int
    channel_count: int = 1
    received_at_ms: float = 0.0

    @property
    def frame_count(self) -> int:
        return len(self.samples) // max(self.channel_count, 1)


@dataclass(frozen=True)
class AudioChunk:
    """A fixed-duration slice of mono int16 PCM from one source.

    Chunks are immutable once emitted: the sample array is marked read-only
    and speaker tagging produces a new chunk via ``with_speaker``.
    """

    source_id: str
    samples: np.ndarray
    sample_rate: int
    captured_at_ms: float
    duration_ms: float
    sequence_number: int
    speaker: SpeakerAttribution | None = None
    is_final: bool = False

    def __post_init__(self) -> None:
        self.samples.setflags(write=False)

    @property
    def sample_count(self) -> int:
        return len(self.samples)

    @property
    def midpoint_ms(self) -> float:
        return self.captured_at_ms + self.duration_ms / 2

    def with_speaker(self, speaker: SpeakerAttribution) -> "AudioChunk":
        return AudioChunk(
            source_id=self.source_id,
            samples=self.samples,
            sample_rate=self.sample_rate,
            captured_at_ms=self.captured_at_ms,
            duration_ms=self.duration_ms,
            sequence_number=self.sequence_number,
            speaker=speaker,
            is_final=self.is_final,
        )

    def to_wav_bytes(self) -> bytes:
        """Encode the chunk as a mono 16-bit WAV file."""
        wav_buffer = io.BytesIO()
        with wave.open(wav_buffer, "wb") as wav_file:
            wav_file.setnchannels(1)
            wav_file.setsampwidth(2)
            wav_file.setframerate(self.sample_rate)
            wav_file.writeframes(self.samples.astype("<i2").tobytes())
        return wav_buffer.getvalue()

    def to_event(self) -> dict:
        """Chunk-ready event payload for transcript sinks."""
        return {
            "source_id": self.source_id,
            "samples": self.samples,
            "sample_rate": self.sample_rate,
            "speaker": self.speaker.to_dict() if self.speaker else None,
            "timestamp": self.captured_at_ms,
            "sequence_number": self.sequence_number,
            "is_final": self.is_final,
        }
