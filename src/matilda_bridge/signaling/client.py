"""HTTP client for the conference bridge's client control API.

Wraps token lifecycle, call setup, ICE candidate exchange and event
long-polling. The client holds the current token and participant id but
makes no ordering decisions: queuing candidates until a call exists is the
session orchestrator's job.
"""

import asyncio
from typing import Any

import aiohttp

from ..core.exceptions import AuthError, CleanupError, NegotiationError, SignalingError
from ..core.logging import setup_logging
from ..media.types import IceCandidate
from ..schemas.requests import AckRequest, CallRequest, CandidateRequest, TokenRequest
from ..schemas.responses import BridgeEvent, CallResult, RefreshResult, TokenResult

logger = setup_logging(__name__)

# Status returned when a token is already released or a call already gone
ALREADY_GONE_STATUS = 403


class SignalingClient:
    """Client for one conference on one bridge node.

    Args:
        node_address: Bridge host (optionally ``host:port``)
        conference_alias: Conference alias to join
        call_tag: Tag the bridge attaches to this participant
        scheme: ``https`` in production; tests run against plain ``http``
        request_timeout: Timeout in seconds for ordinary requests
        poll_timeout: Server-side long-poll bound in seconds
        poll_timeout_slack: Extra seconds the client waits past that bound,
            so a poll answered right at the deadline is not dropped
        verify_ssl: Verify the bridge's TLS certificate
        session: Optional shared aiohttp session (not closed by this client)

    """

    def __init__(
        self,
        node_address: str,
        conference_alias: str,
        call_tag: str = "transcription-bot",
        scheme: str = "https",
        request_timeout: float = 10.0,
        poll_timeout: float = 30.0,
        poll_timeout_slack: float = 5.0,
        verify_ssl: bool = True,
        session: aiohttp.ClientSession | None = None,
    ):
        if not node_address or not conference_alias:
            raise ValueError("Bridge node address and conference alias are required")

        self.node_address = node_address
        self.conference_alias = conference_alias
        self.call_tag = call_tag
        self.base_url = f"{scheme}://{node_address}/api/client/v2/conferences/{conference_alias}"
        self.request_timeout = request_timeout
        self.poll_timeout = poll_timeout
        self.poll_timeout_slack = poll_timeout_slack
        self.verify_ssl = verify_ssl

        self.token: str | None = None
        self.participant_id: str | None = None
        self.expires_in: int | None = None

        self._session = session
        self._owns_session = session is None

    def _http(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(ssl=self.verify_ssl)
            self._session = aiohttp.ClientSession(connector=connector)
            self._owns_session = True
        return self._session

    def _headers(self) -> dict[str, str]:
        return {"token": self.token} if self.token else {}

    def _call_url(self, call_id: str, action: str) -> str:
        return f"participants/{self.participant_id}/calls/{call_id}/{action}"

    async def _request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> tuple[int, dict[str, Any]]:
        """Send one request and return ``(status, decoded JSON body)``."""
        url = f"{self.base_url}/{path}"
        client_timeout = aiohttp.ClientTimeout(total=timeout or self.request_timeout)
        async with self._http().request(
            method, url, json=payload, headers=self._headers(), timeout=client_timeout
        ) as response:
            try:
                data = await response.json(content_type=None)
            except ValueError:
                data = None
            logger.debug(f"{method} {path} -> {response.status}")
            return response.status, data if isinstance(data, dict) else {}

    @staticmethod
    def _is_success(status: int) -> bool:
        return 200 <= status < 300

    @staticmethod
    def _pin_required(data: dict[str, Any]) -> bool:
        result = data.get("result")
        if isinstance(result, dict) and result.get("pin") == "required":
            return True
        return data.get("pin_status") == "required"

    async def request_token(self, display_name: str, pin: str = "") -> TokenResult:
        """Request a participant token, retrying once with the PIN if the bridge asks for it.

        Raises:
            AuthError: Any non-2xx response other than a satisfiable PIN challenge

        """
        body = TokenRequest(display_name=display_name, call_tag=self.call_tag)
        try:
            status, data = await self._request("POST", "request_token", body.model_dump(exclude_none=True))
            if status == 403 and self._pin_required(data):
                if not pin:
                    raise AuthError("Conference requires a PIN but none was configured", status=status)
                logger.info("Conference requires a PIN, retrying token request")
                body.pin = pin
                status, data = await self._request("POST", "request_token", body.model_dump(exclude_none=True))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise AuthError(f"Token request failed: {e}") from e

        if not self._is_success(status):
            raise AuthError(f"Token request rejected with status {status}: {data}", status=status)

        result = TokenResult.model_validate(data.get("result", {}))
        self.token = result.token
        self.participant_id = result.participant_uuid
        self.expires_in = result.expires
        logger.info(f"Token acquired for participant {result.participant_uuid} (expires in {result.expires}s)")
        return result

    async def join_call(self, local_sdp: str) -> CallResult:
        """Create the WebRTC call and return the bridge's call id and SDP answer.

        Raises:
            NegotiationError: Non-2xx response or transport failure

        """
        if not self.participant_id:
            raise NegotiationError("Cannot join call without a participant token")

        body = CallRequest(sdp=local_sdp)
        try:
            status, data = await self._request("POST", f"participants/{self.participant_id}/calls", body.model_dump())
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NegotiationError(f"Call request failed: {e}") from e

        if not self._is_success(status):
            raise NegotiationError(f"Call request rejected with status {status}: {data}")

        result = CallResult.model_validate(data.get("result", {}))
        logger.info(f"Call created: {result.call_uuid}")
        return result

    async def send_ack(self, call_id: str, sdp: str | None = None) -> None:
        """Acknowledge the call to start media; ``sdp`` answers a renegotiation."""
        body = AckRequest(sdp=sdp)
        try:
            status, data = await self._request("POST", self._call_url(call_id, "ack"), body.model_dump(exclude_none=True))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NegotiationError(f"Ack failed: {e}") from e
        if not self._is_success(status):
            raise NegotiationError(f"Ack rejected with status {status}: {data}")
        logger.debug(f"Call {call_id} acknowledged")

    async def send_ice_candidate(self, call_id: str | None, candidate: IceCandidate) -> bool:
        """Forward one local ICE candidate. Never raises.

        Returns:
            True if the bridge accepted it; False when there is no call yet or
            the request failed

        """
        if not call_id:
            logger.debug("No call id yet, not sending ICE candidate")
            return False

        body = CandidateRequest(
            candidate=candidate.candidate,
            mid=candidate.sdp_mid,
            ufrag=candidate.username_fragment,
        )
        try:
            status, _ = await self._request("POST", self._call_url(call_id, "new_candidate"), body.model_dump())
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Failed to send ICE candidate: {e}")
            return False
        if not self._is_success(status):
            logger.warning(f"ICE candidate rejected with status {status}")
            return False
        return True

    async def poll_events(self) -> list[BridgeEvent]:
        """Long-poll for bridge events; an expired poll is an empty result.

        Raises:
            SignalingError: Non-2xx response or connection failure

        """
        try:
            status, data = await self._request("GET", "events", timeout=self.poll_timeout + self.poll_timeout_slack)
        except asyncio.TimeoutError:
            return []
        except aiohttp.ClientError as e:
            raise SignalingError(f"Event poll failed: {e}") from e

        if not self._is_success(status):
            raise SignalingError(f"Event poll rejected with status {status}", status=status)

        result = data.get("result") or []
        if isinstance(result, dict):
            result = [result]
        events = []
        for raw in result:
            if isinstance(raw, dict) and raw.get("event"):
                events.append(BridgeEvent.model_validate(raw))
            else:
                logger.debug(f"Skipping malformed event entry: {raw!r}")
        return events

    async def refresh_token(self) -> RefreshResult:
        """Exchange the current token for a fresh one.

        Raises:
            AuthError: Non-2xx response or transport failure

        """
        try:
            status, data = await self._request("POST", "refresh_token")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise AuthError(f"Token refresh failed: {e}") from e
        if not self._is_success(status):
            raise AuthError(f"Token refresh rejected with status {status}", status=status)

        result = RefreshResult.model_validate(data.get("result", {}))
        self.token = result.token
        self.expires_in = result.expires
        logger.info(f"Token refreshed (expires in {result.expires}s)")
        return result

    async def get_participants(self) -> list[dict[str, Any]]:
        """Current conference roster, excluding this client's own participant."""
        try:
            status, data = await self._request("GET", "participants")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SignalingError(f"Participant list failed: {e}") from e
        if not self._is_success(status):
            raise SignalingError(f"Participant list rejected with status {status}", status=status)

        return [
            participant
            for participant in data.get("result") or []
            if isinstance(participant, dict) and participant.get("uuid") != self.participant_id
        ]

    async def _cleanup(self, path: str, description: str) -> None:
        try:
            status, _ = await self._request("POST", path)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CleanupError(f"{description} failed: {e}") from e
        if status == ALREADY_GONE_STATUS:
            logger.info(f"{description}: already gone")
            return
        if not self._is_success(status):
            raise CleanupError(f"{description} rejected with status {status}", status=status)
        logger.info(f"{description}: done")

    async def disconnect_call(self, call_id: str | None) -> bool:
        """Hang up the call. Best-effort: failures are logged, never raised."""
        if not call_id or not self.token or not self.participant_id:
            return True
        try:
            await self._cleanup(self._call_url(call_id, "disconnect"), f"Disconnect call {call_id}")
        except CleanupError as e:
            logger.warning(str(e))
            return False
        return True

    async def release_token(self) -> bool:
        """Release the participant token. Best-effort: failures are logged, never raised."""
        if not self.token:
            return True
        try:
            await self._cleanup("release_token", "Release token")
        except CleanupError as e:
            logger.warning(str(e))
            return False
        finally:
            self.token = None
        return True

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
