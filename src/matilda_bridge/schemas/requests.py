from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class BridgeRequest(BaseModel):
    model_config = ConfigDict(extra="allow")


class TokenRequest(BridgeRequest):
    display_name: str
    call_tag: str = "transcription-bot"
    pin: str | None = None


class CallRequest(BridgeRequest):
    call_type: str = "WEBRTC"
    sdp: str
    media_type: str = "audio"


class AckRequest(BridgeRequest):
    sdp: str | None = None


class CandidateRequest(BridgeRequest):
    candidate: str
    mid: str | None = None
    ufrag: str | None = None
    pwd: str = ""
