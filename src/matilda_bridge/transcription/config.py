"""Transcription provider configuration.

API keys come from the environment through ConfigLoader, never from the
config file.
"""

from dataclasses import dataclass

from ..core.config import DEFAULT_CONFIG, ConfigLoader, get_config

_OPENAI_DEFAULTS = DEFAULT_CONFIG["transcription"]["openai"]
_GEMINI_DEFAULTS = DEFAULT_CONFIG["transcription"]["gemini"]


@dataclass
class OpenAIRealtimeSettings:
    """Configuration for the OpenAI Realtime transcription session."""

    api_key: str
    model: str = _OPENAI_DEFAULTS["model"]
    language: str = _OPENAI_DEFAULTS["language"]
    prompt: str = ""
    url: str = _OPENAI_DEFAULTS["url"]

    vad_enabled: bool = True
    # "server_vad" or "semantic_vad"
    vad_type: str = "server_vad"
    vad_threshold: float = 0.5
    vad_prefix_padding_ms: int = 300
    vad_silence_duration_ms: int = 500
    vad_eagerness: str = "auto"

    # "near_field", "far_field" or "" to disable
    noise_reduction: str = "near_field"
    include_logprobs: bool = False
    send_buffer_ms: int = 100

    @classmethod
    def from_config(cls, config: ConfigLoader | None = None) -> "OpenAIRealtimeSettings":
        config = config or get_config()
        section = config.provider_section("openai")
        return cls(
            api_key=config.openai_api_key,
            model=str(section.get("model", cls.model)),
            language=str(section.get("language", cls.language)),
            prompt=str(section.get("prompt", "")),
            url=str(section.get("url", cls.url)),
            vad_enabled=bool(section.get("vad_enabled", True)),
            vad_type=str(section.get("vad_type", "server_vad")),
            vad_threshold=float(section.get("vad_threshold", 0.5)),
            vad_prefix_padding_ms=int(section.get("vad_prefix_padding_ms", 300)),
            vad_silence_duration_ms=int(section.get("vad_silence_duration_ms", 500)),
            vad_eagerness=str(section.get("vad_eagerness", "auto")),
            noise_reduction=str(section.get("noise_reduction", "near_field")),
            include_logprobs=bool(section.get("include_logprobs", False)),
            send_buffer_ms=int(section.get("send_buffer_ms", 100)),
        )


@dataclass
class GeminiLiveSettings:
    """Configuration for the Gemini Live input-transcription session."""

    api_key: str
    model: str = _GEMINI_DEFAULTS["model"]
    language: str = _GEMINI_DEFAULTS["language"]
    url: str = _GEMINI_DEFAULTS["url"]
    vad_enabled: bool = True
    send_buffer_ms: int = 100

    @classmethod
    def from_config(cls, config: ConfigLoader | None = None) -> "GeminiLiveSettings":
        config = config or get_config()
        section = config.provider_section("gemini")
        return cls(
            api_key=config.gemini_api_key,
            model=str(section.get("model", cls.model)),
            language=str(section.get("language", cls.language)),
            url=str(section.get("url", cls.url)),
            vad_enabled=bool(section.get("vad_enabled", True)),
            send_buffer_ms=int(section.get("send_buffer_ms", 100)),
        )
