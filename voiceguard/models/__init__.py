"""Data models for the VoiceGuard application."""

from .audio import AudioStats
from .session import ListenerStatus, ListenerSession, SessionResumeState
from .transcription import Transcript, TriggerConfig
from .location import LocationFix, LocationSnapshot
from .alert import AlertOutcome, AlertRecord
from .events import PartialTranscriptEvent, DetectionEvent, StatusEvent, UserNotice

__all__ = [
    "AudioStats",
    "ListenerStatus",
    "ListenerSession",
    "SessionResumeState",
    "Transcript",
    "TriggerConfig",
    "LocationFix",
    "LocationSnapshot",
    "AlertOutcome",
    "AlertRecord",
    # Notification payloads
    "PartialTranscriptEvent",
    "DetectionEvent",
    "StatusEvent",
    "UserNotice",
]
