"""Audio capture, resampling and PCM conversion."""

from .buffer import ChunkBuffer
from .capture import AudioCapturePipeline
from .config import CaptureSettings
from .resampler import resample
from .types import AudioChunk, AudioFrame

__all__ = ["AudioCapturePipeline", "AudioChunk", "AudioFrame", "CaptureSettings", "ChunkBuffer", "resample"]
