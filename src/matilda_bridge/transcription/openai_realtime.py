"""OpenAI Realtime API adapter (transcription intent).

Audio goes out as ``input_audio_buffer.append`` messages of 24 kHz PCM16.
Transcripts come back per conversation item: ``...transcription.delta`` for
partial text and ``...transcription.completed`` for the final utterance. The
``input_audio_buffer.committed`` message supplies each item's predecessor,
which is how finals are linked into order.
"""

from typing import Any

from ..core.logging import setup_logging
from .base import TranscriptionStreamAdapter
from .config import OpenAIRealtimeSettings
from .types import TranscriptionItem

logger = setup_logging(__name__)

# Returned when a commit arrives with less than 100ms of audio
BUFFER_TOO_SMALL_CODE = "input_audio_buffer_commit_empty"

# Session metadata and speech markers acknowledged without surfacing
IGNORED_MESSAGES = frozenset(
    {
        "transcription_session.updated",
        "session.updated",
        "input_audio_buffer.speech_started",
        "input_audio_buffer.speech_stopped",
        "input_audio_buffer.cleared",
        "conversation.item.created",
        "rate_limits.updated",
    }
)


class OpenAIRealtimeAdapter(TranscriptionStreamAdapter):
    """Streams conference audio to OpenAI Realtime transcription."""

    provider_name = "openai"
    sample_rate = 24000
    supports_logprobs = True

    def __init__(self, settings: OpenAIRealtimeSettings, **kwargs: Any):
        if not settings.api_key:
            raise ValueError("OpenAI API key is required")
        super().__init__(vad_enabled=settings.vad_enabled, send_buffer_ms=settings.send_buffer_ms, **kwargs)
        self.settings = settings
        self.session_id: str | None = None

        # item_id -> previous_item_id, from input_audio_buffer.committed
        self._previous_items: dict[str, str | None] = {}
        self._partial_text: dict[str, str] = {}
        self._handlers = {
            "transcription_session.created": self._on_session_created,
            "session.created": self._on_session_created,
            "input_audio_buffer.committed": self._on_committed,
            "conversation.item.input_audio_transcription.delta": self._on_delta,
            "conversation.item.input_audio_transcription.completed": self._on_completed,
            "conversation.item.input_audio_transcription.failed": self._on_failed,
            "error": self._on_error_message,
        }

    def _endpoint(self) -> tuple[str, dict[str, str]]:
        return self.settings.url, {
            "Authorization": f"Bearer {self.settings.api_key}",
            "OpenAI-Beta": "realtime=v1",
        }

    def _turn_detection(self) -> dict[str, Any] | None:
        if not self.settings.vad_enabled:
            return None
        if self.settings.vad_type == "semantic_vad":
            return {"type": "semantic_vad", "eagerness": self.settings.vad_eagerness}
        return {
            "type": "server_vad",
            "threshold": self.settings.vad_threshold,
            "prefix_padding_ms": self.settings.vad_prefix_padding_ms,
            "silence_duration_ms": self.settings.vad_silence_duration_ms,
        }

    def _session_messages(self) -> list[dict[str, Any]]:
        transcription: dict[str, Any] = {"model": self.settings.model}
        if self.settings.prompt:
            transcription["prompt"] = self.settings.prompt
        if self.settings.language:
            transcription["language"] = self.settings.language

        session: dict[str, Any] = {
            "input_audio_format": "pcm16",
            "input_audio_transcription": transcription,
            "turn_detection": self._turn_detection(),
        }
        if self.settings.noise_reduction:
            session["input_audio_noise_reduction"] = {"type": self.settings.noise_reduction}
        if self.settings.include_logprobs:
            session["include"] = ["item.input_audio_transcription.logprobs"]

        return [{"type": "transcription_session.update", "session": session}]

    def _audio_messages(self, audio_b64: str) -> list[dict[str, Any]]:
        return [{"type": "input_audio_buffer.append", "audio": audio_b64}]

    def _commit_messages(self) -> list[dict[str, Any]]:
        return [{"type": "input_audio_buffer.commit"}]

    async def clear_buffer(self) -> None:
        """Discard audio buffered locally and on the provider side."""
        self._pending_audio.clear()
        self._pending_samples = 0
        if self.is_connected:
            self._enqueue({"type": "input_audio_buffer.clear"})

    def _handle_message(self, data: dict[str, Any]) -> None:
        message_type = data.get("type", "")
        handler = self._handlers.get(message_type)
        if handler is not None:
            handler(data)
        elif message_type in IGNORED_MESSAGES:
            logger.debug(f"Acknowledged {message_type}")
        else:
            logger.debug(f"Unhandled OpenAI message type: {message_type}")

    def _on_session_created(self, data: dict[str, Any]) -> None:
        self.session_id = (data.get("session") or {}).get("id")
        logger.debug(f"OpenAI session created: {self.session_id}")

    def _on_committed(self, data: dict[str, Any]) -> None:
        item_id = data.get("item_id")
        if item_id:
            self._previous_items[item_id] = data.get("previous_item_id")

    def _on_delta(self, data: dict[str, Any]) -> None:
        item_id = data.get("item_id", "")
        text = self._partial_text.get(item_id, "") + data.get("delta", "")
        self._partial_text[item_id] = text
        self._emit_partial(
            TranscriptionItem(
                item_id=item_id,
                text=text,
                previous_item_id=self._previous_items.get(item_id),
                logprobs=data.get("logprobs"),
                provider=self.provider_name,
            )
        )

    def _on_completed(self, data: dict[str, Any]) -> None:
        item_id = data.get("item_id", "")
        self._partial_text.pop(item_id, None)
        self._emit_final(
            TranscriptionItem(
                item_id=item_id,
                text=data.get("transcript", ""),
                previous_item_id=self._previous_items.pop(item_id, None),
                is_final=True,
                logprobs=data.get("logprobs"),
                provider=self.provider_name,
            )
        )

    def _on_failed(self, data: dict[str, Any]) -> None:
        item_id = data.get("item_id", "")
        self._partial_text.pop(item_id, None)
        error = data.get("error") or {}
        self._emit_error("transcription_failed", error.get("message") or f"Transcription failed for item {item_id}")

    def _on_error_message(self, data: dict[str, Any]) -> None:
        error = data.get("error") or {}
        code = error.get("code") or ""
        message = error.get("message") or "Unknown OpenAI error"
        if self.vad_enabled and (code == BUFFER_TOO_SMALL_CODE or "buffer too small" in message.lower()):
            logger.debug(f"Ignoring expected commit error while server VAD is active: {message}")
            return
        self._emit_error(code or error.get("type") or "provider_error", message)
