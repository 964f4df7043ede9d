"""Matilda Bridge - real-time transcription of video conferences."""

from importlib import import_module
from importlib import metadata
from pathlib import Path
import tomllib
from typing import TYPE_CHECKING


def _get_version() -> str:
    try:
        return metadata.version("goobits-matilda-bridge")
    except metadata.PackageNotFoundError:
        pass

    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
        with open(pyproject_path, "rb") as f:
            data = tomllib.load(f)
        return str(data["project"]["version"])
    except (OSError, KeyError, tomllib.TOMLDecodeError):
        return "unknown"


__version__ = _get_version()

if TYPE_CHECKING:
    from .audio.capture import AudioCapturePipeline
    from .bot import ConferenceTranscriber, LoggingTranscriptSink, TranscriptSink
    from .core.config import ConfigLoader, get_config
    from .media.handler import MediaSessionHandler
    from .session.orchestrator import ConferenceSession
    from .signaling.client import SignalingClient
    from .speakers.tracker import SpeakerAttributionTracker
    from .transcription.factory import create_adapter

_LAZY_EXPORTS = {
    "ConferenceTranscriber": (".bot", "ConferenceTranscriber"),
    "LoggingTranscriptSink": (".bot", "LoggingTranscriptSink"),
    "TranscriptSink": (".bot", "TranscriptSink"),
    "ConfigLoader": (".core.config", "ConfigLoader"),
    "get_config": (".core.config", "get_config"),
    "SignalingClient": (".signaling.client", "SignalingClient"),
    "MediaSessionHandler": (".media.handler", "MediaSessionHandler"),
    "ConferenceSession": (".session.orchestrator", "ConferenceSession"),
    "AudioCapturePipeline": (".audio.capture", "AudioCapturePipeline"),
    "SpeakerAttributionTracker": (".speakers.tracker", "SpeakerAttributionTracker"),
    "create_adapter": (".transcription.factory", "create_adapter"),
}

__all__ = ["__version__", *_LAZY_EXPORTS]


def __getattr__(name):
    if name not in _LAZY_EXPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module_name, attr_name = _LAZY_EXPORTS[name]
    module = import_module(module_name, __name__)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value
