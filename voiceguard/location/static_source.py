"""Location source for a fixed, configured position."""

import time
import logging
import threading
from typing import Optional

from .base import AbstractLocationSource, FixCallback
from ..models.location import LocationFix

logger = logging.getLogger(__name__)


class StaticLocationSource(AbstractLocationSource):
    """Reports a configured position, re-stamped every min_interval_ms.

    Meant for desktop installs without a GPS receiver.
    """

    def __init__(self, latitude: float, longitude: float,
                 accuracy_m: Optional[float] = None, provider: str = "static"):
        self.latitude = latitude
        self.longitude = longitude
        self.accuracy_m = accuracy_m
        self.provider = provider
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def from_config(cls, config) -> Optional["StaticLocationSource"]:
        """Build from the 'location.static' section, or None if not configured."""
        latitude = config.get('location.static.latitude')
        longitude = config.get('location.static.longitude')
        if latitude is None or longitude is None:
            return None
        return cls(
            latitude=float(latitude),
            longitude=float(longitude),
            accuracy_m=config.get('location.static.accuracy_m'),
        )

    def _make_fix(self) -> LocationFix:
        return LocationFix(
            latitude=self.latitude,
            longitude=self.longitude,
            provider=self.provider,
            captured_at=time.time(),
            accuracy_m=self.accuracy_m,
        )

    def request_updates(self, min_interval_ms: int, min_distance_m: float, on_fix: FixCallback) -> None:
        self.cancel_updates()
        self._stop_event = threading.Event()
        interval = max(min_interval_ms, 1000) / 1000.0
        stop_event = self._stop_event

        def _run():
            while True:
                on_fix(self._make_fix())
                if stop_event.wait(interval):
                    break

        self._thread = threading.Thread(target=_run, name="StaticLocationSource", daemon=True)
        self._thread.start()
        logger.info(f"📍 Static location updates started ({self.latitude}, {self.longitude})")

    def cancel_updates(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=1.0)
        self._thread = None

    def get_last_known(self) -> Optional[LocationFix]:
        return self._make_fix()
