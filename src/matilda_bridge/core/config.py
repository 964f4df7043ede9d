#!/usr/bin/env python3
"""Configuration loader that reads from config files."""
import copy
import os
from pathlib import Path
from typing import Any

import tomllib

DEFAULT_CONFIG: dict[str, Any] = {
    "conference": {
        "node": "",
        "alias": "",
        "display_name": "Transcription Bot",
        "pin": "",
        "call_tag": "transcription-bot",
        "scheme": "https",
        "verify_ssl": True,
    },
    "signaling": {
        "request_timeout_s": 10.0,
        "poll_timeout_s": 30.0,
        "poll_interval_s": 0.1,
        "disconnect_grace_s": 0.1,
    },
    "media": {
        "stun_servers": ["stun:stun.l.google.com:19302", "stun:stun1.l.google.com:19302"],
        "max_pending_frames": 500,
    },
    "capture": {
        "chunk_duration_ms": 1000,
        "debug_wav_dir": "",
        "chunk_queue_size": 64,
    },
    "transcription": {
        "provider": "openai",
        "commit_interval_s": 0.0,
        "openai": {
            "model": "gpt-4o-mini-transcribe",
            "language": "en",
            "prompt": "",
            "url": "wss://api.openai.com/v1/realtime?intent=transcription",
            "vad_enabled": True,
            "vad_type": "server_vad",
            "vad_threshold": 0.5,
            "vad_prefix_padding_ms": 300,
            "vad_silence_duration_ms": 500,
            "vad_eagerness": "auto",
            "noise_reduction": "near_field",
            "include_logprobs": False,
            "send_buffer_ms": 100,
        },
        "gemini": {
            "model": "gemini-live-2.5-flash-preview",
            "language": "en-US",
            "url": (
                "wss://generativelanguage.googleapis.com/ws/"
                "google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent"
            ),
            "vad_enabled": True,
            "send_buffer_ms": 100,
        },
    },
}

# Environment variable -> dot path
ENV_OVERRIDES: dict[str, str] = {
    "BRIDGE_NODE": "conference.node",
    "CONFERENCE_ALIAS": "conference.alias",
    "BRIDGE_DISPLAY_NAME": "conference.display_name",
    "BRIDGE_PIN": "conference.pin",
    "TRANSCRIPTION_PROVIDER": "transcription.provider",
    "CHUNK_DURATION_MS": "capture.chunk_duration_ms",
}


class ConfigLoader:
    """Load configuration from the ``[bridge]`` table of the Matilda config file.

    Values resolve in order: environment override, config file, defaults.
    API keys are never read from the file, only from the environment.
    """

    def __init__(self, config_path: str | Path | None = None, environ: dict[str, str] | None = None) -> None:
        if config_path is None:
            config_path = self._default_config_path()
        self._environ = os.environ if environ is None else environ

        self.config_file = str(config_path)
        config_path = Path(config_path)
        if config_path.exists():
            with open(config_path, "rb") as f:
                full_config = tomllib.load(f)
            bridge_config = full_config.get("bridge", {})
        else:
            bridge_config = {}

        self._config = self._merge_dicts(DEFAULT_CONFIG, bridge_config)
        self._apply_env_overrides()

    def _default_config_path(self) -> Path:
        env_path = os.environ.get("MATILDA_CONFIG")
        if env_path:
            return Path(env_path)
        return Path.home() / ".matilda" / "config.toml"

    def _merge_dicts(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        merged = copy.deepcopy(base)
        for key, value in override.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = self._merge_dicts(merged[key], value)
            else:
                merged[key] = value
        return merged

    def _apply_env_overrides(self) -> None:
        for env_name, key_path in ENV_OVERRIDES.items():
            value = self._environ.get(env_name)
            if not value:
                continue
            *parents, leaf = key_path.split(".")
            section = self._config
            for key in parents:
                section = section.setdefault(key, {})
            section[leaf] = value

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get a value using dot notation (e.g., 'conference.node')"""
        keys = key_path.split(".")
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    @property
    def node_address(self) -> str:
        return str(self.get("conference.node", ""))

    @property
    def conference_alias(self) -> str:
        return str(self.get("conference.alias", ""))

    @property
    def display_name(self) -> str:
        return str(self.get("conference.display_name", "Transcription Bot"))

    @property
    def pin(self) -> str:
        return str(self.get("conference.pin", ""))

    @property
    def transcription_provider(self) -> str:
        return str(self.get("transcription.provider", "openai")).lower()

    @property
    def chunk_duration_ms(self) -> int:
        return int(self.get("capture.chunk_duration_ms", 1000))

    @property
    def stun_servers(self) -> list[str]:
        return list(self.get("media.stun_servers", []))

    @property
    def openai_api_key(self) -> str:
        return self._environ.get("OPENAI_API_KEY", "")

    @property
    def gemini_api_key(self) -> str:
        return self._environ.get("GEMINI_API_KEY") or self._environ.get("GOOGLE_API_KEY", "")

    def provider_section(self, provider: str) -> dict[str, Any]:
        """Get the settings table for one transcription provider"""
        return dict(self.get(f"transcription.{provider}", {}))


# Global singleton instance
_config_loader: ConfigLoader | None = None


def get_config() -> ConfigLoader:
    """Get the global config loader instance"""
    global _config_loader
    if _config_loader is None:
        _config_loader = ConfigLoader()
    return _config_loader


def reset_config() -> None:
    """Drop the cached loader so the next get_config() re-reads files and env"""
    global _config_loader
    _config_loader = None


__all__ = ["ConfigLoader", "DEFAULT_CONFIG", "get_config", "reset_config"]
