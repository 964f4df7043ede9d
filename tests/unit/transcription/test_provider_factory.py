"""Unit tests for the transcription provider registry."""

import pytest

from matilda_bridge.core.config import ConfigLoader
from matilda_bridge.transcription.config import GeminiLiveSettings, OpenAIRealtimeSettings
from matilda_bridge.transcription.factory import create_adapter, get_available_providers, get_provider_info
from matilda_bridge.transcription.gemini_live import GeminiLiveAdapter
from matilda_bridge.transcription.openai_realtime import OpenAIRealtimeAdapter


def _config(tmp_path, toml="", **environ):
    path = tmp_path / "config.toml"
    path.write_text(toml)
    return ConfigLoader(path, environ=environ)


class TestRegistry:
    """Test provider discovery."""

    def test_available_providers(self):
        assert get_available_providers() == ["openai", "gemini"]

    def test_provider_info(self, tmp_path):
        info = get_provider_info(_config(tmp_path, OPENAI_API_KEY="sk-test"))

        assert info["openai"]["configured"] is True
        assert info["openai"]["sample_rate"] == 24000
        assert info["gemini"]["configured"] is False
        assert info["gemini"]["api_key_env"] == "GEMINI_API_KEY"


class TestCreateAdapter:
    """Test adapter construction from config."""

    def test_default_provider_from_config(self, tmp_path):
        adapter = create_adapter(config=_config(tmp_path, OPENAI_API_KEY="sk-test"))
        assert isinstance(adapter, OpenAIRealtimeAdapter)
        assert adapter.settings.api_key == "sk-test"

    def test_provider_from_environment(self, tmp_path):
        config = _config(tmp_path, TRANSCRIPTION_PROVIDER="gemini", GOOGLE_API_KEY="g-test")
        adapter = create_adapter(config=config)
        assert isinstance(adapter, GeminiLiveAdapter)
        assert adapter.settings.api_key == "g-test"

    def test_provider_settings_from_file(self, tmp_path):
        toml = '[bridge.transcription.openai]\nmodel = "gpt-4o-transcribe"\nvad_enabled = false\n'
        adapter = create_adapter("openai", config=_config(tmp_path, toml, OPENAI_API_KEY="sk-test"))

        assert adapter.settings.model == "gpt-4o-transcribe"
        assert adapter.vad_enabled is False

    def test_explicit_settings(self, tmp_path):
        adapter = create_adapter("gemini", config=_config(tmp_path), settings=GeminiLiveSettings(api_key="g-1"))
        assert isinstance(adapter, GeminiLiveAdapter)

    def test_callbacks_passed_through(self, tmp_path):
        def on_final(item):
            return None

        adapter = create_adapter(
            "openai", config=_config(tmp_path), settings=OpenAIRealtimeSettings(api_key="sk"), on_final_result=on_final
        )
        assert adapter.on_final_result is on_final

    def test_unknown_provider(self, tmp_path):
        with pytest.raises(ValueError, match="Unknown transcription provider"):
            create_adapter("whisper", config=_config(tmp_path))

    def test_missing_api_key(self, tmp_path):
        with pytest.raises(ValueError, match="OPENAI_API_KEY"):
            create_adapter("openai", config=_config(tmp_path))
