"""Normalized transcription records shared by every provider adapter."""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any


@dataclass
class TranscriptionItem:
    """One provider utterance, partial or final.

    ``previous_item_id`` links each utterance to the one before it; follow
    that chain rather than arrival order to rebuild the transcript.
    """

    item_id: str
    text: str
    previous_item_id: str | None = None
    is_final: bool = False
    logprobs: list[dict[str, Any]] | None = None
    provider: str = ""

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "item_id": self.item_id,
            "previous_item_id": self.previous_item_id,
            "text": self.text,
            "is_final": self.is_final,
            "logprobs": self.logprobs,
            "provider": self.provider,
        }


@dataclass(frozen=True)
class ProviderCapabilities:
    """What a provider adapter needs and offers."""

    name: str
    sample_rate: int
    min_send_samples: int
    audio_format: str = "pcm16"
    supports_partial_results: bool = True
    supports_server_vad: bool = True
    supports_logprobs: bool = False


@dataclass
class AdapterStats:
    """Counters for one provider connection."""

    audio_messages_sent: int = 0
    audio_bytes_sent: int = 0
    messages_received: int = 0
    partial_results: int = 0
    final_results: int = 0
    errors: int = 0
    errors_by_kind: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "audio_messages_sent": self.audio_messages_sent,
            "audio_bytes_sent": self.audio_bytes_sent,
            "messages_received": self.messages_received,
            "partial_results": self.partial_results,
            "final_results": self.final_results,
            "errors": self.errors,
            "errors_by_kind": dict(self.errors_by_kind),
        }


# Callback type aliases
PartialResultCallback = Callable[[TranscriptionItem], None]
FinalResultCallback = Callable[[TranscriptionItem], None]
ProviderErrorCallback = Callable[[str, str], None]
