"""Notification payloads published to observers (UI, console monitor)."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .session import ListenerStatus


@dataclass(frozen=True)
class PartialTranscriptEvent:
    """Interim transcript for the current utterance."""
    text: str
    utterance_id: int
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class DetectionEvent:
    """Final transcript for an utterance."""
    text: str
    utterance_id: int
    detection_count: int
    contains_keyword: bool
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class StatusEvent:
    """Listener status change."""
    status: ListenerStatus
    running: bool
    listening: bool
    detection_count: int
    message: str = ""
    failure_reason: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class UserNotice:
    """Human-readable notification for terminal outcomes (alert sent/failed, listener failed)."""
    level: str  # "info" or "error"
    title: str
    body: str
    timestamp: datetime = field(default_factory=datetime.now)
