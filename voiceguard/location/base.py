"""Abstract base class for location sources."""

from abc import ABC, abstractmethod
from typing import Callable, Optional

from ..models.location import LocationFix

FixCallback = Callable[[LocationFix], None]


class AbstractLocationSource(ABC):
    """Provider of location fixes.

    Fixes are delivered to the callback passed to request_updates(), possibly
    on a different thread.
    """

    @abstractmethod
    def request_updates(self, min_interval_ms: int, min_distance_m: float, on_fix: FixCallback) -> None:
        """Start delivering fixes.

        Args:
            min_interval_ms: Minimum time between fixes
            min_distance_m: Minimum movement between fixes
            on_fix: Called with each new fix
        """
        pass

    @abstractmethod
    def cancel_updates(self) -> None:
        pass

    @abstractmethod
    def get_last_known(self) -> Optional[LocationFix]:
        """Best-effort synchronous lookup; may return None."""
        pass
