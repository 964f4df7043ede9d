"""Provider-agnostic streaming transcription adapter.

Each concrete adapter describes its wire format (endpoint, session setup,
audio and commit messages, inbound message mapping). This base class owns
the shared policy:

- resample every chunk to the provider's required rate
- hold audio until ``min_send_samples`` are buffered, then send one message
- send through a single outbound queue drained by one sender task
- receive on a listener task and map messages onto partial/final/error events
"""

import asyncio
import json
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import numpy as np
import websockets

from ..audio.conversion import pcm16_to_base64
from ..audio.resampler import resample
from ..audio.types import AudioChunk
from ..core.exceptions import ProviderError
from ..core.logging import setup_logging
from .types import (
    AdapterStats,
    FinalResultCallback,
    PartialResultCallback,
    ProviderCapabilities,
    ProviderErrorCallback,
    TranscriptionItem,
)

logger = setup_logging(__name__)

ConnectFactory = Callable[..., Any]


class TranscriptionStreamAdapter(ABC):
    """Base class for real-time transcription back-ends.

    Args:
        vad_enabled: Whether the provider decides commit points itself
        send_buffer_ms: Audio to accumulate before each send
        on_partial_result: Called with in-progress utterance text
        on_final_result: Called with a completed utterance
        on_error: Called with ``(kind, message)`` for non-fatal provider errors
        connect: websockets-compatible connect coroutine (injectable for tests)

    """

    provider_name: str = ""
    sample_rate: int = 16000
    supports_logprobs: bool = False

    def __init__(
        self,
        vad_enabled: bool = True,
        send_buffer_ms: int = 100,
        on_partial_result: PartialResultCallback | None = None,
        on_final_result: FinalResultCallback | None = None,
        on_error: ProviderErrorCallback | None = None,
        connect: ConnectFactory | None = None,
    ):
        self.vad_enabled = vad_enabled
        self.min_send_samples = self.sample_rate * send_buffer_ms // 1000
        self.on_partial_result = on_partial_result
        self.on_final_result = on_final_result
        self.on_error = on_error
        self._connect = connect or websockets.connect

        self.websocket: Any = None
        self.stats = AdapterStats()
        self._pending_audio: list[np.ndarray] = []
        self._pending_samples = 0
        self._outbound: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self._sender_task: asyncio.Task | None = None
        self._receiver_task: asyncio.Task | None = None
        self._closing = False

    # Provider wire format

    @abstractmethod
    def _endpoint(self) -> tuple[str, dict[str, str]]:
        """Return ``(url, headers)`` for the provider socket."""

    @abstractmethod
    def _session_messages(self) -> list[dict[str, Any]]:
        """Messages sent right after the socket opens."""

    @abstractmethod
    def _audio_messages(self, audio_b64: str) -> list[dict[str, Any]]:
        """Messages carrying one buffered block of base64 PCM16."""

    def _commit_messages(self) -> list[dict[str, Any]]:
        """Messages that close the current utterance when provider VAD is off."""
        return []

    @abstractmethod
    def _handle_message(self, data: dict[str, Any]) -> None:
        """Map one decoded provider message onto adapter events."""

    def capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            name=self.provider_name,
            sample_rate=self.sample_rate,
            min_send_samples=self.min_send_samples,
            supports_logprobs=self.supports_logprobs,
        )

    # Connection lifecycle

    def _is_websocket_closed(self) -> bool:
        """Check if WebSocket connection is closed."""
        if not self.websocket:
            return True
        if getattr(self.websocket, "close_code", None) is not None:
            return True
        state = getattr(self.websocket, "state", None)
        if state is not None and getattr(state, "name", "") == "CLOSED":
            return True
        return False

    @property
    def is_connected(self) -> bool:
        return not self._closing and not self._is_websocket_closed()

    async def connect(self) -> None:
        """Open the provider socket and send session setup.

        Raises:
            ProviderError: The socket could not be opened

        """
        if self.is_connected:
            return

        url, headers = self._endpoint()
        try:
            self.websocket = await self._connect(url, additional_headers=headers or None)
        except (OSError, TimeoutError, websockets.exceptions.WebSocketException) as e:
            raise ProviderError("connection_failed", f"Could not connect to {self.provider_name}: {e}") from e

        self._closing = False
        self._outbound = asyncio.Queue()
        self._pending_audio.clear()
        self._pending_samples = 0
        self._sender_task = asyncio.create_task(self._send_loop())
        self._receiver_task = asyncio.create_task(self._receive_loop())
        for message in self._session_messages():
            self._enqueue(message)
        logger.info(f"Connected to {self.provider_name} transcription ({self.sample_rate}Hz, VAD {self.vad_enabled})")

    async def disconnect(self) -> None:
        """Flush buffered audio, drain the send queue and close the socket."""
        if self.websocket is None:
            return

        if self.is_connected:
            self._flush_pending_audio()
            if not self.vad_enabled:
                for message in self._commit_messages():
                    self._enqueue(message)
        self._closing = True
        self._outbound.put_nowait(None)

        if self._sender_task is not None:
            try:
                await asyncio.wait_for(self._sender_task, timeout=2.0)
            except TimeoutError:
                self._sender_task.cancel()
                try:
                    await self._sender_task
                except asyncio.CancelledError:
                    pass
            self._sender_task = None

        try:
            await self.websocket.close()
        except Exception as e:
            logger.debug(f"Error closing {self.provider_name} socket: {e}")

        if self._receiver_task is not None:
            self._receiver_task.cancel()
            try:
                await self._receiver_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"{self.provider_name} receiver ended with error: {e}")
            self._receiver_task = None

        self.websocket = None
        logger.info(f"Disconnected from {self.provider_name} transcription")

    # Audio path

    async def process_audio_chunk(self, chunk: AudioChunk) -> None:
        """Resample one chunk and send once enough audio is buffered.

        Raises:
            ProviderError: The adapter is not connected

        """
        if not self.is_connected:
            raise ProviderError("not_connected", f"{self.provider_name} adapter is not connected")

        samples = resample(chunk.samples, chunk.sample_rate, self.sample_rate)
        if len(samples) == 0:
            return
        self._pending_audio.append(samples)
        self._pending_samples += len(samples)

        if self._pending_samples >= self.min_send_samples:
            self._flush_pending_audio()

    async def commit_buffer(self) -> bool:
        """Close the current utterance. A no-op while provider VAD is enabled.

        Returns:
            True if a commit was sent

        """
        if self.vad_enabled:
            return False
        if not self.is_connected:
            raise ProviderError("not_connected", f"{self.provider_name} adapter is not connected")

        self._flush_pending_audio()
        messages = self._commit_messages()
        for message in messages:
            self._enqueue(message)
        return bool(messages)

    def _flush_pending_audio(self) -> bool:
        if self._pending_samples == 0:
            return False
        audio = np.concatenate(self._pending_audio)
        self._pending_audio.clear()
        self._pending_samples = 0

        for message in self._audio_messages(pcm16_to_base64(audio)):
            self._enqueue(message)
        self.stats.audio_messages_sent += 1
        self.stats.audio_bytes_sent += len(audio) * 2
        logger.debug(f"Queued {len(audio)} samples for {self.provider_name}")
        return True

    def _enqueue(self, message: dict[str, Any]) -> None:
        self._outbound.put_nowait(message)

    async def _send_loop(self) -> None:
        while True:
            message = await self._outbound.get()
            if message is None:
                break
            try:
                await self.websocket.send(json.dumps(message))
            except websockets.exceptions.ConnectionClosed as e:
                if not self._closing:
                    self._emit_error("connection_closed", f"Connection lost while sending: {e}")
                break
            except Exception as e:
                self._emit_error("send_failed", str(e))

    async def _receive_loop(self) -> None:
        try:
            async for raw in self.websocket:
                try:
                    data = json.loads(raw.decode("utf-8") if isinstance(raw, bytes) else raw)
                except (UnicodeDecodeError, json.JSONDecodeError) as e:
                    logger.warning(f"Invalid message from {self.provider_name}: {e}")
                    continue
                self.stats.messages_received += 1
                try:
                    self._handle_message(data)
                except Exception as e:
                    logger.error(f"Error handling {self.provider_name} message: {e}")
        except websockets.exceptions.ConnectionClosed as e:
            if not self._closing:
                self._emit_error("connection_closed", str(e))
            return
        except Exception as e:
            logger.exception(f"{self.provider_name} receive loop failed")
            self._emit_error("receive_failed", str(e))
            return
        if not self._closing:
            self._emit_error("connection_closed", f"{self.provider_name} closed the connection")

    # Event emission

    def _emit_partial(self, item: TranscriptionItem) -> None:
        self.stats.partial_results += 1
        if self.on_partial_result:
            try:
                self.on_partial_result(item)
            except Exception as e:
                logger.error(f"Error in partial result callback: {e}")

    def _emit_final(self, item: TranscriptionItem) -> None:
        self.stats.final_results += 1
        logger.info(f"{self.provider_name} transcript [{item.item_id}]: {item.text}")
        if self.on_final_result:
            try:
                self.on_final_result(item)
            except Exception as e:
                logger.error(f"Error in final result callback: {e}")

    def _emit_error(self, kind: str, message: str) -> None:
        self.stats.errors += 1
        self.stats.errors_by_kind[kind] = self.stats.errors_by_kind.get(kind, 0) + 1
        logger.warning(f"{self.provider_name} error ({kind}): {message}")
        if self.on_error:
            try:
                self.on_error(kind, message)
            except Exception as e:
                logger.error(f"Error in provider error callback: {e}")
