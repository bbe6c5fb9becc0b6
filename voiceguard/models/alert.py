"""Alert dispatch records."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .location import LocationFix


@dataclass(frozen=True)
class AlertOutcome:
    """Outcome of one alert submission: sent, or failed with a reason."""
    sent: bool
    reason: Optional[str] = None

    @classmethod
    def success(cls) -> "AlertOutcome":
        return cls(sent=True)

    @classmethod
    def failure(cls, reason: str) -> "AlertOutcome":
        return cls(sent=False, reason=reason)


@dataclass(frozen=True)
class AlertRecord:
    """Immutable record of one dispatched alert."""
    trigger_text: str
    message_body: str
    started_at: datetime
    sent_at: datetime  # When the dispatch finished, whatever the outcome
    outcome: AlertOutcome
    location_fix: Optional[LocationFix] = None
    location_sent: bool = False
