"""Gemini Live API adapter (input audio transcription).

Gemini streams ``inputTranscription`` fragments for the current turn and
marks the end of a turn with ``turnComplete``. Fragments are reported as a
growing partial; the completed turn becomes a final item. Turn ids are
synthesized locally and chained so transcripts order the same way as other
providers.

With automatic activity detection disabled, each utterance is framed by
``activityStart`` before its first audio and ``activityEnd`` on commit.
"""

from typing import Any

from ..core.logging import setup_logging
from .base import TranscriptionStreamAdapter
from .config import GeminiLiveSettings
from .types import TranscriptionItem

logger = setup_logging(__name__)


class GeminiLiveAdapter(TranscriptionStreamAdapter):
    """Streams conference audio to Gemini Live for input transcription."""

    provider_name = "gemini"
    sample_rate = 16000

    def __init__(self, settings: GeminiLiveSettings, **kwargs: Any):
        if not settings.api_key:
            raise ValueError("Gemini API key is required")
        super().__init__(vad_enabled=settings.vad_enabled, send_buffer_ms=settings.send_buffer_ms, **kwargs)
        self.settings = settings
        self.setup_complete = False

        self._turn_number = 0
        self._turn_text = ""
        self._last_final_id: str | None = None
        self._activity_open = False

    @property
    def current_item_id(self) -> str:
        return f"gemini-turn-{self._turn_number}"

    def _endpoint(self) -> tuple[str, dict[str, str]]:
        return f"{self.settings.url}?key={self.settings.api_key}", {}

    def _session_messages(self) -> list[dict[str, Any]]:
        model = self.settings.model
        if not model.startswith("models/"):
            model = f"models/{model}"
        return [
            {
                "setup": {
                    "model": model,
                    "generationConfig": {
                        "responseModalities": ["TEXT"],
                        "speechConfig": {"languageCode": self.settings.language},
                    },
                    "inputAudioTranscription": {},
                    "realtimeInputConfig": {
                        "automaticActivityDetection": {"disabled": not self.settings.vad_enabled},
                    },
                }
            }
        ]

    def _audio_messages(self, audio_b64: str) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        if not self.vad_enabled and not self._activity_open:
            messages.append({"realtimeInput": {"activityStart": {}}})
            self._activity_open = True
        messages.append(
            {
                "realtimeInput": {
                    "audio": {"data": audio_b64, "mimeType": f"audio/pcm;rate={self.sample_rate}"},
                }
            }
        )
        return messages

    def _commit_messages(self) -> list[dict[str, Any]]:
        if not self._activity_open:
            return []
        self._activity_open = False
        return [{"realtimeInput": {"activityEnd": {}}}]

    def _handle_message(self, data: dict[str, Any]) -> None:
        if "setupComplete" in data:
            self.setup_complete = True
            logger.info("Gemini Live setup complete")
        if "serverContent" in data:
            self._on_server_content(data["serverContent"] or {})
        if "error" in data:
            error = data["error"] if isinstance(data["error"], dict) else {"message": str(data["error"])}
            kind = str(error.get("status") or error.get("code") or "provider_error")
            self._emit_error(kind, error.get("message") or "Unknown Gemini error")
        if "goAway" in data:
            logger.warning(f"Gemini will close the session soon: {data['goAway']}")

    def _on_server_content(self, content: dict[str, Any]) -> None:
        transcription = content.get("inputTranscription") or {}
        fragment = transcription.get("text")
        if fragment:
            self._turn_text += fragment
            self._emit_partial(
                TranscriptionItem(
                    item_id=self.current_item_id,
                    text=self._turn_text.strip(),
                    previous_item_id=self._last_final_id,
                    provider=self.provider_name,
                )
            )

        if content.get("interrupted"):
            logger.debug("Gemini turn interrupted")

        if content.get("turnComplete"):
            self._complete_turn()

    def _complete_turn(self) -> None:
        text = self._turn_text.strip()
        if not text:
            return
        item_id = self.current_item_id
        self._emit_final(
            TranscriptionItem(
                item_id=item_id,
                text=text,
                previous_item_id=self._last_final_id,
                is_final=True,
                provider=self.provider_name,
            )
        )
        self._last_final_id = item_id
        self._turn_number += 1
        self._turn_text = ""
