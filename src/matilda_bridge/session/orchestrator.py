"""Conference session orchestration.

Composes the SignalingClient and MediaSessionHandler into one state machine:

    idle -> authenticating -> negotiating -> active <-> refreshing
                                               |
                                         disconnecting -> closed

Everything runs on one asyncio event loop. The poll loop, the token refresh
task, engine callbacks and candidate sends are serialized by that loop plus a
lock that keeps candidate sends in generation order across the moment the
call id becomes known.
"""

import asyncio
import contextvars
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..core.exceptions import AuthError, BridgeError, NegotiationError
from ..core.logging import bind_conference, setup_logging
from ..core.queues import PendingQueue
from ..media.handler import MediaSessionHandler
from ..media.types import IceCandidate
from ..schemas.responses import BridgeEvent
from ..signaling.client import SignalingClient
from .config import ConferenceSettings

logger = setup_logging(__name__)

# Events forwarded untouched to the participant-event callback
PARTICIPANT_EVENTS = frozenset(
    {
        "participant_create",
        "participant_update",
        "participant_delete",
        "participant_sync_begin",
        "participant_sync_end",
        "stage",
    }
)

ParticipantEventCallback = Callable[[BridgeEvent], None]
SessionStateCallback = Callable[["SessionState"], None]
ErrorCallback = Callable[[BridgeError], None]


class SessionState(Enum):
    """State of a conference session."""

    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    NEGOTIATING = "negotiating"
    ACTIVE = "active"
    REFRESHING = "refreshing"
    DISCONNECTING = "disconnecting"
    CLOSED = "closed"


_TEARDOWN_STATES = (SessionState.DISCONNECTING, SessionState.CLOSED)
_CONNECTING_STATES = (SessionState.AUTHENTICATING, SessionState.NEGOTIATING)


@dataclass
class Session:
    """Identity of one conference membership; replaced on every connect."""

    node_address: str
    conference_alias: str
    display_name: str
    pin: str = ""
    token: str | None = None
    token_expires_at: float | None = None
    participant_id: str | None = None
    call_id: str | None = None
    turn_servers: list[dict[str, Any]] = field(default_factory=list)


def refresh_delay(expires_in: float) -> float:
    """Seconds until a token that expires in ``expires_in`` seconds should be refreshed."""
    return expires_in - min(30.0, 0.25 * expires_in)


class ConferenceSession:
    """Connects to one conference and keeps the membership alive until disconnect.

    Args:
        signaling: Control API client for the conference
        media: Media session handler; its local-candidate callback is taken over
        settings: Conference identity and pacing
        on_participant_event: Receives participant and stage events
        on_state_change: Receives every SessionState transition
        on_error: Receives fatal errors raised after connect() returned

    """

    def __init__(
        self,
        signaling: SignalingClient,
        media: MediaSessionHandler,
        settings: ConferenceSettings,
        on_participant_event: ParticipantEventCallback | None = None,
        on_state_change: SessionStateCallback | None = None,
        on_error: ErrorCallback | None = None,
    ):
        self.signaling = signaling
        self.media = media
        self.settings = settings
        self.on_participant_event = on_participant_event
        self.on_state_change = on_state_change
        self.on_error = on_error

        self.state = SessionState.IDLE
        self.session: Session | None = None

        self._pending_candidates: PendingQueue[IceCandidate] = PendingQueue()
        self._candidate_lock = asyncio.Lock()
        self._candidate_tasks: set[asyncio.Task] = set()
        self._poll_task: asyncio.Task | None = None
        self._refresh_task: asyncio.Task | None = None
        self._stopping = asyncio.Event()
        self._log_context = contextvars.copy_context()
        self._connect_task: asyncio.Task | None = None
        self._connect_interrupted = False
        self._connect_finished = asyncio.Event()
        self._event_handlers: dict[str, Callable[[BridgeEvent], Awaitable[None]]] = {
            "new_offer": self._handle_new_offer,
            "new_candidate": self._handle_new_candidate,
            "disconnect": self._handle_disconnect,
            "participant_sync_end": self._handle_sync_end,
        }

        self.media.on_local_candidate = self._on_local_candidate

    @property
    def is_active(self) -> bool:
        return self.state in (SessionState.ACTIVE, SessionState.REFRESHING)

    @property
    def pending_candidate_count(self) -> int:
        return len(self._pending_candidates)

    def _update_state(self, new_state: SessionState) -> None:
        if new_state == self.state:
            return
        if self.state in _TEARDOWN_STATES and new_state in (SessionState.ACTIVE, SessionState.REFRESHING):
            logger.debug(f"Ignoring {new_state.value} after teardown began")
            return
        logger.info(f"Session state: {self.state.value} -> {new_state.value}")
        self.state = new_state
        if self.on_state_change:
            try:
                self.on_state_change(new_state)
            except Exception as e:
                logger.error(f"Error in session state callback: {e}")

    async def connect(self) -> Session:
        """Join the conference and start polling and token refresh.

        Raises:
            AuthError: Token request rejected
            NegotiationError: Call setup failed
            BridgeError: connect() called on a session that is not idle or closed,
                or disconnect() interrupted it

        """
        if self.state not in (SessionState.IDLE, SessionState.CLOSED):
            raise BridgeError(f"Cannot connect while {self.state.value}")

        self._stopping.clear()
        self._pending_candidates.clear()
        self._connect_task = asyncio.current_task()
        self._connect_interrupted = False
        self._connect_finished = asyncio.Event()
        self.session = Session(
            node_address=self.settings.node_address,
            conference_alias=self.settings.conference_alias,
            display_name=self.settings.display_name,
            pin=self.settings.pin,
        )

        try:
            self._update_state(SessionState.AUTHENTICATING)
            token = await self.signaling.request_token(self.settings.display_name, self.settings.pin)
            self.session.token = token.token
            self.session.participant_id = token.participant_uuid
            self.session.token_expires_at = time.monotonic() + token.expires
            self.session.turn_servers = [server.model_dump(exclude_none=True) for server in token.turn]
            self._log_context = contextvars.copy_context()
            self._log_context.run(bind_conference, self.settings.conference_alias, token.participant_uuid)

            self._update_state(SessionState.NEGOTIATING)
            offer = await self.media.create_offer(self.session.turn_servers)
            call = await self.signaling.join_call(offer)
            await self._assign_call(call.call_uuid)
            await self.media.set_remote_answer(call.sdp)
            await self.signaling.send_ack(call.call_uuid)
        except asyncio.CancelledError:
            await self._abort_connect()
            if not self._connect_interrupted:
                raise
            # The cancellation came from disconnect(), not from our caller
            asyncio.current_task().uncancel()
            raise BridgeError("Disconnected while connecting") from None
        except Exception as e:
            logger.error(f"Connect failed: {e}")
            await self._abort_connect()
            raise
        finally:
            self._connect_task = None
            self._connect_finished.set()

        self._update_state(SessionState.ACTIVE)
        self._refresh_task = asyncio.create_task(self._refresh_loop(token.expires), context=self._log_context.copy())
        self._poll_task = asyncio.create_task(self._poll_loop(), context=self._log_context.copy())
        logger.info(f"Joined {self.settings.conference_alias} as {self.session.participant_id}")
        return self.session

    async def _abort_connect(self) -> None:
        self._stopping.set()
        self._pending_candidates.clear()
        try:
            await self.media.close()
        except Exception as e:
            logger.warning(f"Error closing media after failed connect: {e}")
        call_id = self.session.call_id if self.session else None
        await self.signaling.disconnect_call(call_id)
        await self.signaling.release_token()
        self._update_state(SessionState.CLOSED)

    # ICE candidates

    def _on_local_candidate(self, candidate: IceCandidate) -> None:
        call_id = self.session.call_id if self.session else None
        if call_id is None:
            self._pending_candidates.push(candidate)
            logger.debug(f"Queued local ICE candidate ({len(self._pending_candidates)} pending)")
            return
        task = asyncio.create_task(self._send_candidates([candidate]), context=self._log_context.copy())
        self._candidate_tasks.add(task)
        task.add_done_callback(self._candidate_tasks.discard)

    async def _assign_call(self, call_id: str) -> None:
        """Record the call id and flush queued candidates in generation order."""
        assert self.session is not None
        self.session.call_id = call_id
        queued = self._pending_candidates.drain()
        if queued:
            logger.info(f"Flushing {len(queued)} queued ICE candidates")
        await self._send_candidates(queued)

    async def _send_candidates(self, candidates: list[IceCandidate]) -> None:
        if not candidates:
            return
        async with self._candidate_lock:
            call_id = self.session.call_id if self.session else None
            for candidate in candidates:
                if self._stopping.is_set():
                    return
                await self.signaling.send_ice_candidate(call_id, candidate)

    # Event polling

    async def _poll_loop(self) -> None:
        logger.debug("Event poll loop started")
        while not self._stopping.is_set():
            try:
                events = await self.signaling.poll_events()
                for event in events:
                    if self._stopping.is_set():
                        break
                    await self._dispatch(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Event poll iteration failed: {e}")

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.settings.poll_interval_s)
            except TimeoutError:
                pass
        logger.debug("Event poll loop stopped")

    async def _dispatch(self, event: BridgeEvent) -> None:
        handler = self._event_handlers.get(event.event)
        if event.event in PARTICIPANT_EVENTS:
            self._forward_participant_event(event)
        if handler is not None:
            await handler(event)
        elif event.event not in PARTICIPANT_EVENTS:
            logger.debug(f"Unhandled bridge event: {event.event}")

    def _forward_participant_event(self, event: BridgeEvent) -> None:
        if self.on_participant_event is None:
            return
        try:
            self.on_participant_event(event)
        except Exception as e:
            logger.error(f"Error in participant event callback: {e}")

    async def _handle_new_offer(self, event: BridgeEvent) -> None:
        if not event.sdp or self.session is None or not self.session.call_id:
            logger.warning("Ignoring new_offer without SDP or call")
            return
        logger.info("Bridge requested renegotiation")
        try:
            answer = await self.media.handle_remote_offer(event.sdp)
            await self.signaling.send_ack(self.session.call_id, answer)
        except NegotiationError as e:
            logger.error(f"Renegotiation failed: {e}")
            self._report_error(e)

    async def _handle_new_candidate(self, event: BridgeEvent) -> None:
        if not event.candidate:
            return
        await self.media.add_remote_candidate(
            IceCandidate(candidate=event.candidate, sdp_mid=event.mid, sdp_mline_index=event.get("sdp_mline_index"))
        )

    async def _handle_disconnect(self, event: BridgeEvent) -> None:
        logger.info(f"Bridge disconnected us: {event.reason or 'no reason given'}")
        await self.disconnect()

    async def _handle_sync_end(self, event: BridgeEvent) -> None:
        try:
            roster = await self.signaling.get_participants()
        except BridgeError as e:
            logger.warning(f"Could not fetch participant roster: {e}")
            return
        for participant in roster:
            self._forward_participant_event(BridgeEvent.model_validate({**participant, "event": "participant_create"}))

    # Token refresh

    async def _refresh_loop(self, expires_in: float) -> None:
        delay = refresh_delay(expires_in)
        while not self._stopping.is_set():
            logger.debug(f"Next token refresh in {delay:.1f}s")
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=delay)
                return
            except TimeoutError:
                pass

            self._update_state(SessionState.REFRESHING)
            try:
                result = await self.signaling.refresh_token()
            except AuthError as e:
                logger.error(f"Token refresh failed, leaving conference: {e}")
                self._report_error(e)
                await self.disconnect()
                return

            if self.session is not None:
                self.session.token = result.token
                self.session.token_expires_at = time.monotonic() + result.expires
            if self.state == SessionState.REFRESHING:
                self._update_state(SessionState.ACTIVE)
            delay = refresh_delay(result.expires)

    def _report_error(self, error: BridgeError) -> None:
        if self.on_error is None:
            return
        try:
            self.on_error(error)
        except Exception as e:
            logger.error(f"Error in session error callback: {e}")

    # Teardown

    async def _stop_task(self, task: asyncio.Task | None) -> None:
        if task is None or task is asyncio.current_task() or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.warning(f"Background task ended with error: {e}")

    async def _interrupt_connect(self) -> None:
        """Stop an in-flight connect(); its abort path releases whatever it acquired."""
        finished = self._connect_finished
        self._update_state(SessionState.DISCONNECTING)
        if not self._stopping.is_set():
            self._connect_interrupted = True
            self._connect_task.cancel()
        await finished.wait()

    async def disconnect(self) -> None:
        """Leave the conference. Safe to call repeatedly; only the first call tears down."""
        if self.state in (SessionState.IDLE, SessionState.DISCONNECTING, SessionState.CLOSED):
            return
        if self.state in _CONNECTING_STATES and self._connect_task not in (None, asyncio.current_task()):
            await self._interrupt_connect()
            return
        self._update_state(SessionState.DISCONNECTING)
        self._stopping.set()

        await self._stop_task(self._refresh_task)
        self._refresh_task = None
        await self._stop_task(self._poll_task)
        self._poll_task = None
        for task in list(self._candidate_tasks):
            await self._stop_task(task)
        self._pending_candidates.clear()

        try:
            await self.media.close()
        except Exception as e:
            logger.warning(f"Error closing media session: {e}")

        await asyncio.sleep(self.settings.disconnect_grace_s)

        call_id = self.session.call_id if self.session else None
        await self.signaling.disconnect_call(call_id)
        await self.signaling.release_token()

        self._update_state(SessionState.CLOSED)
        logger.info("Left conference")
