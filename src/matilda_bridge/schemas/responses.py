from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TurnServer(BaseModel):
    model_config = ConfigDict(extra="allow")

    urls: list[str] | str
    username: str | None = None
    credential: str | None = None

    @property
    def url_list(self) -> list[str]:
        return [self.urls] if isinstance(self.urls, str) else list(self.urls)


class TokenResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    token: str
    participant_uuid: str
    expires: int = 120
    turn: list[TurnServer] = Field(default_factory=list)
    display_name: str | None = None


class RefreshResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    token: str
    expires: int = 120


class CallResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    call_uuid: str
    sdp: str


class BridgeEvent(BaseModel):
    """One entry of the ``events`` long-poll result.

    Participant and stage events carry arbitrary bridge fields, kept as extras.
    """

    model_config = ConfigDict(extra="allow")

    event: str
    sdp: str | None = None
    candidate: str | None = None
    mid: str | None = None
    reason: str | None = None

    def get(self, name: str, default: Any = None) -> Any:
        extra = self.model_extra or {}
        if name in extra:
            return extra[name]
        return getattr(self, name, default)
