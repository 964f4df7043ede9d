"""Wire models for the conference bridge client API."""

from .requests import AckRequest, CallRequest, CandidateRequest, TokenRequest
from .responses import BridgeEvent, CallResult, RefreshResult, TokenResult, TurnServer

__all__ = [
    "AckRequest",
    "CallRequest",
    "CandidateRequest",
    "TokenRequest",
    "BridgeEvent",
    "CallResult",
    "RefreshResult",
    "TokenResult",
    "TurnServer",
]
