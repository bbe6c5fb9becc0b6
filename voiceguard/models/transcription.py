"""Transcript and trigger models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class Transcript:
    """A partial or final transcript produced by a recognition source."""
    text: str
    is_partial: bool
    timestamp: datetime = field(default_factory=datetime.now)
    utterance_id: Optional[int] = None  # Listening cycle that produced this transcript


@dataclass(frozen=True)
class TriggerConfig:
    """Immutable trigger snapshot read once per session."""
    keyword: str
    enabled: bool = True

    @classmethod
    def from_keyword(cls, keyword: Optional[str], enabled: bool = True) -> "TriggerConfig":
        return cls(keyword=(keyword or "").strip().lower(), enabled=enabled)
