"""Listener session state models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ListenerStatus(Enum):
    """Lifecycle states of the listener state machine."""
    IDLE = "idle"
    STARTING = "starting"
    LISTENING = "listening"
    PROCESSING = "processing"
    FAILED = "failed"


@dataclass
class ListenerSession:
    """Mutable state of one start()-to-stop() listening session.

    Only the ListenerController's worker context mutates this; everyone else
    gets a copy from get_session_snapshot().
    """
    running: bool = False
    listening: bool = False
    status: ListenerStatus = ListenerStatus.IDLE
    detection_count: int = 0
    restart_attempts: int = 0
    last_restart_at: Optional[float] = None  # Unix timestamp of last serious-error restart
    started_at: Optional[float] = None
    failure_reason: Optional[str] = None


@dataclass(frozen=True)
class SessionResumeState:
    """Persisted best-effort flag used to show a "still running" indicator."""
    was_running: bool = False
    started_at: Optional[float] = None
