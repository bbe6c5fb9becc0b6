"""Location fix models."""

import time
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class LocationFix:
    """A single location reading."""
    latitude: float
    longitude: float
    provider: str
    captured_at: float  # Unix timestamp when the fix was taken
    accuracy_m: Optional[float] = None

    @property
    def has_accuracy(self) -> bool:
        return self.accuracy_m is not None

    def age_seconds(self, now: Optional[float] = None) -> float:
        now = time.time() if now is None else now
        return max(0.0, now - self.captured_at)


@dataclass(frozen=True)
class LocationSnapshot:
    """Result of a best-effort location lookup."""
    fix: Optional[LocationFix]
    text: str
    approximate: bool = False

    @property
    def available(self) -> bool:
        return self.fix is not None
