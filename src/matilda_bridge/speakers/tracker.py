"""Speaker attribution from bridge participant and voice-activity events.

The tracker assumes one speaker at a time: when someone starts speaking,
whoever held the floor has their interval closed first. Overlapping speech
is therefore attributed to the most recent speaker.
"""

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

from .types import (
    CURRENT_SPEAKER_CONFIDENCE,
    INTERVAL_MATCH_CONFIDENCE,
    UNKNOWN_SPEAKER,
    Participant,
    SpeakerAttribution,
    SpeakingInterval,
)

logger = logging.getLogger(__name__)

# Bridge VAD value that marks a participant as actively speaking
SPEAKING_VAD = 100


def _now_ms() -> float:
    return time.time() * 1000


def _event_payload(event: Any) -> dict[str, Any]:
    if hasattr(event, "model_dump"):
        return dict(event.model_dump())
    if isinstance(event, Mapping):
        return dict(event)
    raise TypeError(f"Unsupported participant event: {type(event).__name__}")


class SpeakerAttributionTracker:
    """Tracks the roster and an append-only log of speaking intervals.

    Args:
        clock: Millisecond wall clock, injectable for tests

    """

    def __init__(self, clock: Callable[[], float] = _now_ms):
        self._clock = clock
        self._participants: dict[str, Participant] = {}
        self._intervals: list[SpeakingInterval] = []
        self._open_interval: SpeakingInterval | None = None
        self._ignored: set[str] = set()
        self._handlers = {
            "participant_create": self.participant_joined,
            "participant_update": self.participant_updated,
            "participant_delete": self.participant_left,
            "stage": self.stage_updated,
        }

    @property
    def participants(self) -> list[Participant]:
        return list(self._participants.values())

    @property
    def intervals(self) -> list[SpeakingInterval]:
        return list(self._intervals)

    @property
    def current_speaker(self) -> Participant | None:
        if self._open_interval is None:
            return None
        return self._participants.get(self._open_interval.participant_id)

    def get_participant(self, participant_id: str) -> Participant | None:
        return self._participants.get(participant_id)

    def ignore(self, participant_id: str) -> None:
        """Never track this participant (the bot's own identity)."""
        self._ignored.add(participant_id)
        self._participants.pop(participant_id, None)

    def on_participant_event(self, event: Any) -> None:
        """Dispatch a bridge participant/stage event by its ``event`` type."""
        payload = _event_payload(event)
        event_type = payload.get("event") or payload.get("type")
        handler = self._handlers.get(event_type)
        if handler is None:
            logger.debug(f"Ignoring participant event type {event_type!r}")
            return
        handler(payload)

    def participant_joined(self, data: Mapping[str, Any]) -> Participant | None:
        participant_id = data.get("uuid") or data.get("participant_uuid")
        if not participant_id or participant_id in self._ignored:
            return None

        existing = self._participants.get(participant_id)
        if existing is not None:
            existing.display_name = data.get("display_name") or existing.display_name
            existing.role = data.get("role") or existing.role
            return existing

        participant = Participant(
            id=participant_id,
            display_name=data.get("display_name") or "Unknown",
            role=data.get("role") or "guest",
            joined_at_ms=self._clock(),
        )
        self._participants[participant_id] = participant
        logger.info(f"Participant joined: {participant.display_name} ({participant_id})")
        return participant

    def participant_updated(self, data: Mapping[str, Any]) -> None:
        participant_id = data.get("uuid") or data.get("participant_uuid")
        if not participant_id or participant_id in self._ignored:
            return
        participant = self._participants.get(participant_id)
        if participant is None:
            participant = self.participant_joined(data)
            if participant is None:
                return

        if data.get("display_name"):
            participant.display_name = data["display_name"]

        now = self._clock()
        if "is_muted" in data:
            participant.is_muted = str(data["is_muted"]).upper() in {"YES", "TRUE", "1"}
            if participant.is_muted and participant.is_speaking:
                self._stop_speaking(participant, now)

        vad = data.get("vad")
        if vad is None or participant.is_muted:
            return
        speaking = int(vad) == SPEAKING_VAD
        if speaking and not participant.is_speaking:
            self._start_speaking(participant, now)
        elif not speaking and participant.is_speaking:
            self._stop_speaking(participant, now)

    def participant_left(self, data: Mapping[str, Any]) -> None:
        participant_id = data.get("uuid") or data.get("participant_uuid")
        participant = self._participants.get(participant_id) if participant_id else None
        if participant is None:
            return
        if participant.is_speaking:
            self._stop_speaking(participant, self._clock())
        del self._participants[participant.id]
        logger.info(f"Participant left: {participant.display_name} ({participant.id})")

    def stage_updated(self, data: Mapping[str, Any]) -> None:
        """Apply an active-speaker list; the first entry with voice activity holds the floor."""
        now = self._clock()
        active_id = None
        for entry in data.get("participants") or []:
            entry_id = entry.get("participant_uuid") or entry.get("uuid")
            if entry_id in self._participants and int(entry.get("vad") or 0) > 0:
                active_id = entry_id
                break

        current = self.current_speaker
        if active_id is None:
            if current is not None:
                self._stop_speaking(current, now)
            return
        if current is not None and current.id == active_id:
            return
        self._start_speaking(self._participants[active_id], now)

    def _start_speaking(self, participant: Participant, now: float) -> None:
        current = self.current_speaker
        if current is not None and current.id != participant.id:
            self._stop_speaking(current, now)

        participant.is_speaking = True
        participant.speaking_started_at_ms = now
        self._open_interval = SpeakingInterval(participant.id, participant.display_name, start_ms=now)
        self._intervals.append(self._open_interval)
        logger.debug(f"{participant.display_name} started speaking")

    def _stop_speaking(self, participant: Participant, now: float) -> None:
        interval = self._open_interval
        if interval is not None and interval.participant_id == participant.id:
            interval.end_ms = now
            self._open_interval = None

        if participant.speaking_started_at_ms is not None:
            participant.total_speaking_ms += now - participant.speaking_started_at_ms
        participant.is_speaking = False
        participant.speaking_started_at_ms = None
        participant.last_spoke_at_ms = now
        logger.debug(f"{participant.display_name} stopped speaking")

    def speaker_at(self, timestamp_ms: float) -> SpeakerAttribution:
        """Who was speaking at ``timestamp_ms``.

        Returns:
            The matching interval's participant at 0.9 confidence, else the
            current speaker at 0.5, else the unknown sentinel at 0.0

        """
        for interval in reversed(self._intervals):
            if interval.contains(timestamp_ms):
                return SpeakerAttribution(
                    interval.participant_id, interval.display_name, INTERVAL_MATCH_CONFIDENCE
                )

        current = self.current_speaker
        if current is not None:
            return SpeakerAttribution(current.id, current.display_name, CURRENT_SPEAKER_CONFIDENCE)
        return UNKNOWN_SPEAKER

    def get_statistics(self) -> dict[str, Any]:
        """Per-participant speaking time and share of all speech so far."""
        now = self._clock()
        speaking_ms: dict[str, float] = {}
        for participant in self._participants.values():
            total = participant.total_speaking_ms
            if participant.is_speaking and participant.speaking_started_at_ms is not None:
                total += now - participant.speaking_started_at_ms
            speaking_ms[participant.id] = total

        overall = sum(speaking_ms.values())
        return {
            "participant_count": len(self._participants),
            "interval_count": len(self._intervals),
            "total_speaking_ms": overall,
            "participants": [
                {
                    "id": participant.id,
                    "display_name": participant.display_name,
                    "role": participant.role,
                    "is_speaking": participant.is_speaking,
                    "total_speaking_ms": speaking_ms[participant.id],
                    "percentage": (speaking_ms[participant.id] / overall * 100) if overall else 0.0,
                }
                for participant in self._participants.values()
            ],
        }

    def reset(self) -> None:
        self._participants.clear()
        self._intervals.clear()
        self._open_interval = None
