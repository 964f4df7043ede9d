"""Streaming transcription adapters for third-party speech back-ends."""

from importlib import import_module
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .base import TranscriptionStreamAdapter
    from .factory import create_adapter, get_available_providers
    from .gemini_live import GeminiLiveAdapter
    from .openai_realtime import OpenAIRealtimeAdapter
    from .ordering import TranscriptOrderer
    from .types import TranscriptionItem

__all__ = [
    "TranscriptionStreamAdapter",
    "OpenAIRealtimeAdapter",
    "GeminiLiveAdapter",
    "TranscriptOrderer",
    "TranscriptionItem",
    "create_adapter",
    "get_available_providers",
]

_LAZY_EXPORTS = {
    "TranscriptionStreamAdapter": (".base", "TranscriptionStreamAdapter"),
    "OpenAIRealtimeAdapter": (".openai_realtime", "OpenAIRealtimeAdapter"),
    "GeminiLiveAdapter": (".gemini_live", "GeminiLiveAdapter"),
    "TranscriptOrderer": (".ordering", "TranscriptOrderer"),
    "TranscriptionItem": (".types", "TranscriptionItem"),
    "create_adapter": (".factory", "create_adapter"),
    "get_available_providers": (".factory", "get_available_providers"),
}


def __getattr__(name):
    if name not in _LAZY_EXPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module_name, attr_name = _LAZY_EXPORTS[name]
    module = import_module(module_name, __name__)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value
