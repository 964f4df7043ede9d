"""Audio capture pipeline: decoded frames in, speaker-tagged chunks out."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from ..speakers.types import SpeakerAttribution
from .buffer import ChunkBuffer
from .config import CaptureSettings
from .conversion import downmix_to_mono, ensure_int16
from .resampler import resample
from .types import AudioChunk, AudioFrame

logger = logging.getLogger(__name__)

ChunkReadyCallback = Callable[[AudioChunk], None]
SpeakerLookup = Callable[[float], SpeakerAttribution]


@dataclass
class SourceStats:
    """Running counters for one audio source."""

    source_id: str
    sample_rate: int = 0
    frames_received: int = 0
    samples_received: int = 0
    chunks_emitted: int = 0
    started_at_ms: float = field(default_factory=lambda: time.time() * 1000)

    @property
    def seconds_processed(self) -> float:
        if not self.sample_rate:
            return 0.0
        return self.samples_received / self.sample_rate

    def to_dict(self) -> dict:
        return {
            "source_id": self.source_id,
            "sample_rate": self.sample_rate,
            "frames_received": self.frames_received,
            "samples_received": self.samples_received,
            "chunks_emitted": self.chunks_emitted,
            "seconds_processed": self.seconds_processed,
        }


class AudioCapturePipeline:
    """Turns per-source PCM frames into fixed-duration, speaker-tagged chunks.

    Each source gets its own ChunkBuffer. Frames are down-mixed to mono and,
    when ``target_sample_rate`` is set, resampled before buffering. Every
    emitted chunk is tagged through ``speaker_lookup`` at its midpoint and
    handed to ``on_chunk_ready``, which must return quickly: slow consumers
    belong behind a queue.
    """

    def __init__(
        self,
        settings: CaptureSettings | None = None,
        speaker_lookup: SpeakerLookup | None = None,
        on_chunk_ready: ChunkReadyCallback | None = None,
    ):
        self.settings = settings or CaptureSettings()
        self.speaker_lookup = speaker_lookup
        self.on_chunk_ready = on_chunk_ready

        self._buffers: dict[str, ChunkBuffer] = {}
        self._stats: dict[str, SourceStats] = {}
        self._debug_dir: Path | None = None
        if self.settings.debug_wav_dir:
            self._debug_dir = Path(self.settings.debug_wav_dir)
            self._debug_dir.mkdir(parents=True, exist_ok=True)

    @property
    def active_sources(self) -> list[str]:
        return list(self._buffers)

    def _buffer_for(self, source_id: str, sample_rate: int) -> tuple[ChunkBuffer, list[AudioChunk]]:
        flushed: list[AudioChunk] = []
        buffer = self._buffers.get(source_id)
        if buffer is not None and buffer.sample_rate != sample_rate:
            logger.info(f"{source_id}: sample rate changed {buffer.sample_rate} -> {sample_rate}, restarting buffer")
            final = buffer.flush()
            if final is not None:
                flushed.append(final)
            buffer = None
        if buffer is None:
            buffer = ChunkBuffer(source_id, sample_rate, self.settings.chunk_duration_ms)
            self._buffers[source_id] = buffer
            logger.info(
                f"Capturing {source_id} at {sample_rate}Hz in {self.settings.chunk_duration_ms}ms chunks"
            )
        return buffer, flushed

    def process_frame(self, frame: AudioFrame) -> list[AudioChunk]:
        """Buffer one decoded frame and emit any chunks it completes."""
        samples = downmix_to_mono(ensure_int16(frame.samples), frame.channel_count)
        sample_rate = frame.sample_rate
        target_rate = self.settings.target_sample_rate
        if target_rate and target_rate != sample_rate:
            samples = resample(samples, sample_rate, target_rate)
            sample_rate = target_rate

        stats = self._stats.setdefault(frame.source_id, SourceStats(frame.source_id))
        stats.sample_rate = sample_rate
        stats.frames_received += 1
        stats.samples_received += len(samples)

        buffer, chunks = self._buffer_for(frame.source_id, sample_rate)
        received_at = frame.received_at_ms or time.time() * 1000
        chunks.extend(buffer.append(samples, received_at_ms=received_at))
        return [self._emit(chunk) for chunk in chunks]

    def stop_source(self, source_id: str) -> AudioChunk | None:
        """Flush and forget one source (its track ended)."""
        buffer = self._buffers.pop(source_id, None)
        if buffer is None:
            return None
        final = buffer.flush()
        logger.info(f"Stopped capturing {source_id}")
        return self._emit(final) if final is not None else None

    def flush(self) -> list[AudioChunk]:
        """Flush every source, returning the final chunks emitted."""
        finals: list[AudioChunk] = []
        for source_id in list(self._buffers):
            chunk = self.stop_source(source_id)
            if chunk is not None:
                finals.append(chunk)
        return finals

    def _emit(self, chunk: AudioChunk) -> AudioChunk:
        if self.speaker_lookup is not None:
            chunk = chunk.with_speaker(self.speaker_lookup(chunk.midpoint_ms))

        stats = self._stats.get(chunk.source_id)
        if stats is not None:
            stats.chunks_emitted += 1

        if self._debug_dir is not None:
            self._save_debug_wav(chunk)

        if self.on_chunk_ready is not None:
            try:
                self.on_chunk_ready(chunk)
            except Exception as e:
                logger.error(f"Error in chunk-ready callback: {e}")
        return chunk

    def _save_debug_wav(self, chunk: AudioChunk) -> None:
        assert self._debug_dir is not None
        safe_source = "".join(c if c.isalnum() or c in "-_" else "_" for c in chunk.source_id)
        path = self._debug_dir / f"{safe_source}_{chunk.sequence_number:06d}.wav"
        try:
            path.write_bytes(chunk.to_wav_bytes())
        except OSError as e:
            logger.warning(f"Could not write debug chunk {path}: {e}")

    def get_stats(self) -> dict[str, dict]:
        return {source_id: stats.to_dict() for source_id, stats in self._stats.items()}
