"""Fixed-duration chunk buffer for one audio source.

Provides ChunkBuffer that accumulates mono int16 PCM and slices it into
chunks of exactly ``sample_rate * chunk_duration_ms / 1000`` samples:
- The remainder after each slice stays buffered for the next chunk
- Capture timestamps advance by sample count, not wall clock
- ``flush()`` releases a final, possibly short, chunk
"""

import logging

import numpy as np

from .types import AudioChunk

logger = logging.getLogger(__name__)


class ChunkBuffer:
    """Accumulating buffer that emits fixed-size chunks without loss or duplication.

    Example:
        buffer = ChunkBuffer("track-1", sample_rate=16000, chunk_duration_ms=1000)
        for chunk in buffer.append(samples, received_at_ms=now_ms):
            handle(chunk)

        final = buffer.flush()

    """

    def __init__(self, source_id: str, sample_rate: int, chunk_duration_ms: int = 1000):
        """Initialize chunk buffer.

        Args:
            source_id: Identifier of the audio source feeding this buffer
            sample_rate: Sample rate of the appended PCM in Hz
            chunk_duration_ms: Target chunk duration in milliseconds

        """
        if chunk_duration_ms <= 0:
            raise ValueError(f"chunk_duration_ms must be positive, got {chunk_duration_ms}")

        self.source_id = source_id
        self.sample_rate = sample_rate
        self.chunk_duration_ms = chunk_duration_ms
        self.target_samples = sample_rate * chunk_duration_ms // 1000
        if self.target_samples <= 0:
            raise ValueError(f"Chunk of {chunk_duration_ms}ms at {sample_rate}Hz holds no samples")

        self._buffer: np.ndarray = np.zeros(0, dtype=np.int16)
        self._buffer_start_ms: float | None = None
        self._next_sequence = 0
        self._total_samples = 0
        self._closed = False

    @property
    def samples_in_buffer(self) -> int:
        """Number of samples waiting for the next chunk."""
        return len(self._buffer)

    @property
    def total_samples(self) -> int:
        """Total samples ever appended."""
        return self._total_samples

    @property
    def chunks_emitted(self) -> int:
        return self._next_sequence

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _ms_for(self, samples: int) -> float:
        return samples / self.sample_rate * 1000

    def _make_chunk(self, samples: np.ndarray, is_final: bool = False) -> AudioChunk:
        start_ms = self._buffer_start_ms or 0.0
        chunk = AudioChunk(
            source_id=self.source_id,
            samples=samples.copy(),
            sample_rate=self.sample_rate,
            captured_at_ms=start_ms,
            duration_ms=self._ms_for(len(samples)),
            sequence_number=self._next_sequence,
            is_final=is_final,
        )
        self._next_sequence += 1
        self._buffer_start_ms = start_ms + chunk.duration_ms
        return chunk

    def append(self, samples: np.ndarray, received_at_ms: float = 0.0) -> list[AudioChunk]:
        """Append mono int16 samples and return every chunk that became complete.

        Args:
            samples: Mono int16 PCM at ``sample_rate``
            received_at_ms: Arrival time of these samples; only the first append anchors the timeline

        Returns:
            Zero or more full-length chunks, in order

        """
        if self._closed:
            raise RuntimeError(f"Chunk buffer for {self.source_id} was flushed and closed")
        if len(samples) == 0:
            return []

        if self._buffer_start_ms is None:
            self._buffer_start_ms = received_at_ms

        self._buffer = np.concatenate([self._buffer, samples.astype(np.int16, copy=False)])
        self._total_samples += len(samples)

        chunks: list[AudioChunk] = []
        while len(self._buffer) >= self.target_samples:
            head = self._buffer[: self.target_samples]
            self._buffer = self._buffer[self.target_samples :]
            chunks.append(self._make_chunk(head))

        if chunks:
            logger.debug(
                f"{self.source_id}: emitted {len(chunks)} chunk(s), {len(self._buffer)} samples carried over"
            )
        return chunks

    def flush(self) -> AudioChunk | None:
        """Emit the buffered remainder as a final chunk and close the buffer.

        Returns:
            The final chunk, or None if nothing was buffered

        """
        if self._closed:
            return None
        self._closed = True
        if len(self._buffer) == 0:
            return None

        remainder = self._buffer
        self._buffer = np.zeros(0, dtype=np.int16)
        return self._make_chunk(remainder, is_final=True)
