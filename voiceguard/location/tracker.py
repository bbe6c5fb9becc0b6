"""Best-fix tracking and bounded location lookups."""

import time
import logging
import threading
from typing import Callable, Optional

from .base import AbstractLocationSource
from ..config.settings import ListenerSettings
from ..models.location import LocationFix, LocationSnapshot

logger = logging.getLogger(__name__)

UNAVAILABLE_TEXT = "Location unavailable"
NO_PERMISSION_TEXT = "Location permission not granted"


def is_better_fix(new: LocationFix, current: Optional[LocationFix], staleness: float) -> bool:
    """Decide whether a new fix should replace the retained one.

    Within the staleness window the more accurate fix wins (known accuracy
    beats unknown, ties go to the newer fix). Outside it, recency decides.
    """
    if current is None:
        return True

    time_delta = new.captured_at - current.captured_at
    if time_delta > staleness:
        return True
    if time_delta < -staleness:
        return False

    if new.has_accuracy and current.has_accuracy:
        if new.accuracy_m != current.accuracy_m:
            return new.accuracy_m < current.accuracy_m
        return time_delta > 0
    if new.has_accuracy != current.has_accuracy:
        return new.has_accuracy
    return time_delta > 0


def format_coordinate(value: float) -> str:
    """Up to six decimals, trailing zeros dropped."""
    text = f"{value:.6f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def format_fix(fix: LocationFix, now: Optional[float] = None) -> str:
    lat = format_coordinate(fix.latitude)
    lon = format_coordinate(fix.longitude)
    accuracy = f"{int(fix.accuracy_m)}m" if fix.has_accuracy else "?"
    age = int(fix.age_seconds(now))
    return (
        f"Lat: {lat}, Lon: {lon}\n"
        f"Accuracy: ±{accuracy} ({fix.provider or 'unknown'})\n"
        f"Age: {age}s\n"
        f"Google Maps: https://maps.google.com/?q={lat},{lon}"
    )


class LocationTracker:
    """Retains the single best fix seen and answers bounded lookups.

    Fixes may be offered from any thread. A lookup that needs a fresh fix waits
    on a condition until a new fix arrives, the timeout expires, or
    cancel_pending()/stop() is called.
    """

    def __init__(self,
                 source: Optional[AbstractLocationSource],
                 settings: Optional[ListenerSettings] = None,
                 permission_check: Optional[Callable[[], bool]] = None,
                 clock: Callable[[], float] = time.time):
        self.source = source
        self.settings = settings or ListenerSettings()
        self._permission_check = permission_check or (lambda: True)
        self._clock = clock

        self._cond = threading.Condition()
        self._best: Optional[LocationFix] = None
        self._fix_counter = 0  # Every offered fix, accepted or not
        self._generation = 0  # Bumped to wake waiters on cancellation
        self._tracking = False

    @property
    def best_fix(self) -> Optional[LocationFix]:
        with self._cond:
            return self._best

    @property
    def is_tracking(self) -> bool:
        return self._tracking

    def has_permission(self) -> bool:
        return self.source is not None and self._permission_check()

    def start(self, on_fix: Optional[Callable[[LocationFix], None]] = None) -> bool:
        """Seed from the last known fix and request continuous updates.

        Args:
            on_fix: Callback handed to the source; defaults to offer(). Callers
                    that serialize state changes pass a funneling callback here.

        Returns:
            True if updates were requested
        """
        if not self.has_permission():
            logger.warning("⚠️ Location updates not started: no source or no permission")
            return False
        if self._tracking:
            return True

        last_known = self._last_known()
        if last_known:
            self.offer(last_known)

        self.source.request_updates(
            self.settings.location_min_interval_ms,
            self.settings.location_min_distance_m,
            on_fix or self.offer,
        )
        self._tracking = True
        logger.info("📍 Location tracking started")
        return True

    def stop(self) -> None:
        """Cancel updates and wake any pending lookup. Safe to call repeatedly."""
        if self._tracking:
            try:
                self.source.cancel_updates()
            finally:
                self._tracking = False
                logger.info("📍 Location tracking stopped")
        self.cancel_pending()

    def cancel_pending(self) -> None:
        with self._cond:
            self._generation += 1
            self._cond.notify_all()

    def offer(self, fix: Optional[LocationFix]) -> bool:
        """Consider a new fix; returns True if it replaced the retained one."""
        if fix is None:
            return False
        with self._cond:
            self._fix_counter += 1
            accepted = is_better_fix(fix, self._best, self.settings.location_staleness)
            if accepted:
                self._best = fix
                accuracy = f"{int(fix.accuracy_m)}m" if fix.has_accuracy else "?"
                logger.debug(f"📍 New location: {format_coordinate(fix.latitude)},"
                             f"{format_coordinate(fix.longitude)} (±{accuracy}, {fix.provider})")
            self._cond.notify_all()
            return accepted

    def _needs_fresh_fix(self, best: Optional[LocationFix]) -> bool:
        return best is None or best.age_seconds(self._clock()) > self.settings.location_staleness

    def _last_known(self) -> Optional[LocationFix]:
        try:
            fix = self.source.get_last_known()
        except Exception as e:
            logger.warning(f"Error reading last known location: {e}")
            return None
        if fix is None:
            return None
        if fix.age_seconds(self._clock()) >= self.settings.last_known_max_age:
            logger.debug("Last known location too old, ignoring")
            return None
        return fix

    def get_best_effort_location(self, wait_for_fresh: bool = True,
                                 timeout: Optional[float] = None) -> LocationSnapshot:
        """Return the retained fix, waiting a bounded time for a fresh one if needed.

        Args:
            wait_for_fresh: Wait for a new fix when the retained one is missing or stale
            timeout: Maximum wait in seconds (defaults to location_fetch_timeout)

        Returns:
            LocationSnapshot; fix is None and text is a sentinel when nothing is known
        """
        if not self.has_permission():
            return LocationSnapshot(fix=None, text=NO_PERMISSION_TEXT)

        timeout = self.settings.location_fetch_timeout if timeout is None else timeout

        with self._cond:
            best = self._best
            if wait_for_fresh and self._tracking and timeout > 0 and self._needs_fresh_fix(best):
                seen = self._fix_counter
                generation = self._generation
                logger.info(f"Waiting up to {timeout:.1f}s for a fresh location fix")
                got_fix = self._cond.wait_for(
                    lambda: self._fix_counter != seen or self._generation != generation,
                    timeout,
                )
                if not got_fix:
                    logger.warning("Timed out waiting for a fresh location fix")
                best = self._best

        now = self._clock()
        if best is not None:
            return LocationSnapshot(fix=best, text=format_fix(best, now))

        last_known = self._last_known()
        if last_known is not None:
            return LocationSnapshot(
                fix=last_known,
                text=f"{format_fix(last_known, now)}\n(approximate location)",
                approximate=True,
            )

        return LocationSnapshot(fix=None, text=UNAVAILABLE_TEXT)
