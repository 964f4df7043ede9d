"""Conference session orchestration."""

from .config import ConferenceSettings
from .orchestrator import ConferenceSession, Session, SessionState, refresh_delay

__all__ = ["ConferenceSession", "ConferenceSettings", "Session", "SessionState", "refresh_delay"]
