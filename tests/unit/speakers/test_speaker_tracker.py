"""Unit tests for SpeakerAttributionTracker."""

import pytest

from matilda_bridge.schemas.responses import BridgeEvent
from matilda_bridge.speakers.tracker import SpeakerAttributionTracker
from matilda_bridge.speakers.types import UNKNOWN_SPEAKER, SpeakingInterval


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock(1_000.0)


@pytest.fixture
def tracker(clock):
    tracker = SpeakerAttributionTracker(clock=clock)
    tracker.on_participant_event({"event": "participant_create", "uuid": "a", "display_name": "Alice"})
    tracker.on_participant_event({"event": "participant_create", "uuid": "b", "display_name": "Bob"})
    return tracker


def _vad(tracker, participant_id, vad):
    tracker.on_participant_event({"event": "participant_update", "uuid": participant_id, "vad": vad})


class TestSpeakingInterval:
    """Test SpeakingInterval containment."""

    def test_half_open(self):
        interval = SpeakingInterval("a", "Alice", start_ms=100.0, end_ms=200.0)
        assert interval.contains(100.0)
        assert interval.contains(199.9)
        assert not interval.contains(200.0)
        assert not interval.contains(99.9)

    def test_open_interval_has_no_end(self):
        interval = SpeakingInterval("a", "Alice", start_ms=100.0)
        assert interval.is_open
        assert interval.duration_ms is None
        assert interval.contains(1e12)


class TestRoster:
    """Test participant join, update and leave handling."""

    def test_join(self, tracker):
        names = sorted(p.display_name for p in tracker.participants)
        assert names == ["Alice", "Bob"]

    def test_join_twice_updates_name(self, tracker):
        tracker.on_participant_event({"event": "participant_create", "uuid": "a", "display_name": "Alice B."})
        assert len(tracker.participants) == 2
        assert tracker.get_participant("a").display_name == "Alice B."

    def test_update_for_unknown_participant_adds_them(self, tracker):
        _vad(tracker, "c", 0)
        assert tracker.get_participant("c") is not None

    def test_leave_while_speaking_closes_interval(self, tracker, clock):
        _vad(tracker, "a", 100)
        clock.now = 1_500.0
        tracker.on_participant_event({"event": "participant_delete", "uuid": "a"})

        assert tracker.get_participant("a") is None
        assert tracker.intervals[0].end_ms == 1_500.0
        assert tracker.current_speaker is None

    def test_pydantic_event_accepted(self, tracker):
        tracker.on_participant_event(BridgeEvent(event="participant_create", uuid="c", display_name="Carol"))
        assert tracker.get_participant("c").display_name == "Carol"

    def test_unknown_event_ignored(self, tracker):
        tracker.on_participant_event({"event": "conference_update"})
        assert len(tracker.participants) == 2

    def test_ignored_participant_never_tracked(self, tracker):
        tracker.ignore("self")
        tracker.on_participant_event({"event": "participant_create", "uuid": "self"})
        _vad(tracker, "self", 100)
        assert tracker.get_participant("self") is None
        assert tracker.intervals == []


class TestSpeakingTransitions:
    """Test voice-activity driven speaking intervals."""

    def test_vad_starts_and_stops_speech(self, tracker, clock):
        _vad(tracker, "a", 100)
        clock.now = 2_000.0
        _vad(tracker, "a", 0)

        (interval,) = tracker.intervals
        assert interval.participant_id == "a"
        assert (interval.start_ms, interval.end_ms) == (1_000.0, 2_000.0)
        assert tracker.current_speaker is None

    def test_repeated_vad_keeps_single_interval(self, tracker):
        _vad(tracker, "a", 100)
        _vad(tracker, "a", 100)
        assert len(tracker.intervals) == 1

    def test_new_speaker_closes_previous_first(self, tracker, clock):
        _vad(tracker, "a", 100)
        clock.now = 1_400.0
        _vad(tracker, "b", 100)

        first, second = tracker.intervals
        assert first.participant_id == "a"
        assert first.end_ms == 1_400.0
        assert second.participant_id == "b"
        assert second.start_ms == 1_400.0
        assert first.end_ms <= second.start_ms
        assert tracker.current_speaker.id == "b"
        assert tracker.get_participant("a").is_speaking is False

    def test_at_most_one_open_interval(self, tracker, clock):
        for i, participant_id in enumerate(["a", "b", "a", "b", "a"]):
            clock.now = 1_000.0 + i * 100
            _vad(tracker, participant_id, 100)
            assert sum(1 for interval in tracker.intervals if interval.is_open) == 1

    def test_mute_stops_speech(self, tracker, clock):
        _vad(tracker, "a", 100)
        clock.now = 1_300.0
        tracker.on_participant_event({"event": "participant_update", "uuid": "a", "is_muted": "YES", "vad": 100})

        assert tracker.intervals[0].end_ms == 1_300.0
        assert tracker.get_participant("a").is_muted is True
        assert tracker.current_speaker is None

    def test_stage_sets_active_speaker(self, tracker, clock):
        tracker.on_participant_event(
            {
                "event": "stage",
                "participants": [
                    {"participant_uuid": "b", "vad": 0},
                    {"participant_uuid": "a", "vad": 100},
                ],
            }
        )
        assert tracker.current_speaker.id == "a"

        clock.now = 1_800.0
        tracker.on_participant_event({"event": "stage", "participants": [{"participant_uuid": "a", "vad": 0}]})
        assert tracker.current_speaker is None
        assert tracker.intervals[0].end_ms == 1_800.0


class TestSpeakerAt:
    """Test attribution lookups."""

    def test_interval_match(self, tracker, clock):
        _vad(tracker, "a", 100)
        clock.now = 2_000.0
        _vad(tracker, "a", 0)

        attribution = tracker.speaker_at(1_500.0)

        assert attribution.participant_id == "a"
        assert attribution.display_name == "Alice"
        assert attribution.confidence == 0.9

    def test_boundary_belongs_to_next_speaker(self, tracker, clock):
        _vad(tracker, "a", 100)
        clock.now = 2_000.0
        _vad(tracker, "b", 100)

        assert tracker.speaker_at(2_000.0).participant_id == "b"
        assert tracker.speaker_at(1_999.0).participant_id == "a"

    def test_falls_back_to_current_speaker(self, tracker, clock):
        clock.now = 5_000.0
        _vad(tracker, "b", 100)

        attribution = tracker.speaker_at(4_000.0)

        assert attribution.participant_id == "b"
        assert attribution.confidence == 0.5

    def test_unknown_when_nobody_spoke(self, tracker):
        attribution = tracker.speaker_at(1_500.0)
        assert attribution is UNKNOWN_SPEAKER
        assert attribution.is_unknown
        assert attribution.confidence == 0.0

    def test_gap_after_speech_is_unknown(self, tracker, clock):
        _vad(tracker, "a", 100)
        clock.now = 2_000.0
        _vad(tracker, "a", 0)

        assert tracker.speaker_at(3_000.0).is_unknown


class TestStatistics:
    """Test speaking statistics."""

    def test_totals_and_percentages(self, tracker, clock):
        _vad(tracker, "a", 100)
        clock.now = 4_000.0
        _vad(tracker, "b", 100)
        clock.now = 5_000.0

        stats = tracker.get_statistics()
        by_id = {p["id"]: p for p in stats["participants"]}

        assert stats["participant_count"] == 2
        assert stats["interval_count"] == 2
        assert stats["total_speaking_ms"] == pytest.approx(4_000.0)
        assert by_id["a"]["total_speaking_ms"] == pytest.approx(3_000.0)
        assert by_id["b"]["total_speaking_ms"] == pytest.approx(1_000.0)
        assert by_id["a"]["percentage"] == pytest.approx(75.0)
        assert by_id["b"]["is_speaking"] is True

    def test_empty(self):
        stats = SpeakerAttributionTracker().get_statistics()
        assert stats["participants"] == []
        assert stats["total_speaking_ms"] == 0

    def test_reset(self, tracker):
        _vad(tracker, "a", 100)
        tracker.reset()
        assert tracker.participants == []
        assert tracker.intervals == []
        assert tracker.current_speaker is None
