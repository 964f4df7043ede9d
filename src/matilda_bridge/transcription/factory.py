"""
Transcription provider registry.

Supported providers:
- openai: OpenAI Realtime API, 24kHz PCM16, server or semantic VAD
- gemini: Gemini Live API, 16kHz PCM16, automatic activity detection
"""
from typing import Any

from ..core.config import ConfigLoader, get_config
from ..core.logging import setup_logging
from .base import TranscriptionStreamAdapter
from .config import GeminiLiveSettings, OpenAIRealtimeSettings
from .gemini_live import GeminiLiveAdapter
from .openai_realtime import OpenAIRealtimeAdapter

logger = setup_logging(__name__)

PROVIDERS: dict[str, dict[str, Any]] = {
    "openai": {
        "adapter": OpenAIRealtimeAdapter,
        "settings": OpenAIRealtimeSettings,
        "description": "OpenAI Realtime transcription (gpt-4o-transcribe family)",
        "api_key_env": "OPENAI_API_KEY",
    },
    "gemini": {
        "adapter": GeminiLiveAdapter,
        "settings": GeminiLiveSettings,
        "description": "Google Gemini Live input transcription",
        "api_key_env": "GEMINI_API_KEY",
    },
}


def get_available_providers() -> list[str]:
    """Return the names of all registered providers."""
    return list(PROVIDERS)


def get_provider_info(config: ConfigLoader | None = None) -> dict[str, dict[str, Any]]:
    """
    Return detailed info about all providers.

    Returns:
        Dict mapping provider name to 'configured', 'description', 'sample_rate', 'api_key_env'.
    """
    config = config or get_config()
    keys = {"openai": config.openai_api_key, "gemini": config.gemini_api_key}
    return {
        name: {
            "configured": bool(keys.get(name)),
            "description": entry["description"],
            "sample_rate": entry["adapter"].sample_rate,
            "api_key_env": entry["api_key_env"],
        }
        for name, entry in PROVIDERS.items()
    }


def create_adapter(
    provider: str | None = None,
    config: ConfigLoader | None = None,
    settings: Any = None,
    **kwargs: Any,
) -> TranscriptionStreamAdapter:
    """
    Build a transcription adapter for ``provider``.

    Args:
        provider: 'openai' or 'gemini'; defaults to the configured provider
        config: Config loader used when ``settings`` is not given
        settings: Ready-made provider settings object
        **kwargs: Event callbacks and other adapter keyword arguments

    Raises:
        ValueError: If the provider is unknown or has no API key.
    """
    config = config or get_config()
    name = (provider or config.transcription_provider).lower()
    entry = PROVIDERS.get(name)
    if entry is None:
        raise ValueError(f"Unknown transcription provider {name!r}. Available: {', '.join(PROVIDERS)}")

    if settings is None:
        settings = entry["settings"].from_config(config)
    if not settings.api_key:
        raise ValueError(f"{name} provider requires an API key (set {entry['api_key_env']})")

    logger.info(f"Using {name} transcription provider")
    return entry["adapter"](settings, **kwargs)
