"""Audio capture configuration."""

from dataclasses import dataclass

from ..core.config import ConfigLoader, get_config


@dataclass
class CaptureSettings:
    """Configuration for the audio capture pipeline.

    Loaded from config.toml ``[bridge.capture]`` with sensible defaults.
    """

    chunk_duration_ms: int = 1000
    # Resample every source to this rate before chunking (None keeps source rate)
    target_sample_rate: int | None = None
    # Write each emitted chunk as a WAV file here (empty disables)
    debug_wav_dir: str = ""
    # Chunks waiting for the transcription provider before the oldest is dropped
    chunk_queue_size: int = 64

    @classmethod
    def from_config(cls, config: ConfigLoader | None = None) -> "CaptureSettings":
        """Load capture settings from the Matilda config file."""
        config = config or get_config()
        capture_cfg = config.get("capture", {})
        target_rate = capture_cfg.get("target_sample_rate")
        return cls(
            chunk_duration_ms=config.chunk_duration_ms,
            target_sample_rate=int(target_rate) if target_rate else None,
            debug_wav_dir=str(capture_cfg.get("debug_wav_dir", "")),
            chunk_queue_size=int(capture_cfg.get("chunk_queue_size", 64)),
        )
