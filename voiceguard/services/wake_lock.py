"""Keep-awake resource held while the listener runs."""

import logging
import threading

logger = logging.getLogger(__name__)


class WakeLock:
    """Reference-free keep-awake lock.

    A desktop process needs no OS wake lock to keep the microphone open, so
    this only tracks acquisition. It is a context manager so the listener can
    scope it in an ExitStack; release() of an unheld lock is a no-op.
    """

    def __init__(self, tag: str = "voiceguard:listener"):
        self.tag = tag
        self._lock = threading.Lock()
        self._held = False
        self.acquire_count = 0
        self.release_count = 0

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        with self._lock:
            if self._held:
                logger.warning(f"Wake lock {self.tag} already held")
                return
            self._held = True
            self.acquire_count += 1
        logger.debug(f"🔒 Wake lock acquired: {self.tag}")

    def release(self) -> None:
        with self._lock:
            if not self._held:
                return
            self._held = False
            self.release_count += 1
        logger.debug(f"🔓 Wake lock released: {self.tag}")

    def __enter__(self) -> "WakeLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
