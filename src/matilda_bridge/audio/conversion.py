"""Audio conversion helpers for PCM scaling, channel layout and wire encoding."""

import base64
from typing import cast

import numpy as np


def float32_to_int16(audio: np.ndarray) -> np.ndarray:
    """Convert float PCM in [-1.0, 1.0] to int16."""
    if audio.dtype == np.int16:
        return audio
    audio_f32 = audio.astype(np.float32)
    return cast("np.ndarray", np.clip(audio_f32 * 32768.0, -32768, 32767).astype(np.int16))


def ensure_int16(audio: np.ndarray) -> np.ndarray:
    """Coerce decoded samples to a flat int16 array."""
    flat = np.asarray(audio).reshape(-1)
    if flat.dtype == np.int16:
        return flat
    if np.issubdtype(flat.dtype, np.floating):
        return float32_to_int16(flat)
    return cast("np.ndarray", np.clip(flat, -32768, 32767).astype(np.int16))


def downmix_to_mono(audio: np.ndarray, channels: int) -> np.ndarray:
    """Average interleaved int16 channels into a single channel."""
    if channels <= 1:
        return audio
    usable = len(audio) - (len(audio) % channels)
    frames = audio[:usable].reshape(-1, channels).astype(np.int32)
    return cast("np.ndarray", frames.mean(axis=1).round().astype(np.int16))


def pcm16_to_bytes(audio: np.ndarray) -> bytes:
    """Little-endian 16-bit PCM bytes."""
    return audio.astype("<i2", copy=False).tobytes()


def pcm16_to_base64(audio: np.ndarray) -> str:
    return base64.b64encode(pcm16_to_bytes(audio)).decode("ascii")
