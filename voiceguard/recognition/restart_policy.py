"""Re-arm policy for the recognizer after terminal events."""

from dataclasses import dataclass
from enum import Enum

from .base import RecognitionErrorClass


class RestartAction(Enum):
    RESTART = "restart"
    HALT = "halt"


@dataclass(frozen=True)
class RestartDecision:
    """What to do after a terminal recognizer event."""
    action: RestartAction
    delay: float  # Seconds to wait before re-arming (0 for HALT)
    attempts: int  # Consecutive serious-error count to carry forward
    window_reset: bool = False  # True if the attempt counter was reset by the window

    @property
    def should_restart(self) -> bool:
        return self.action is RestartAction.RESTART


class RestartPolicy:
    """Pure restart decisions: no clock reads, no I/O.

    Recoverable errors restart quickly and leave the counter alone. Serious
    errors back off linearly with the attempt count up to a cap, and halt the
    session once the count reaches max_attempts. The counter starts over after a
    completed utterance, or when reset_window seconds have passed since the last
    serious error.
    """

    def __init__(self,
                 recoverable_delay: float = 0.5,
                 result_delay: float = 0.5,
                 backoff_base: float = 1.0,
                 backoff_cap: float = 30.0,
                 max_attempts: int = 5,
                 reset_window: float = 30.0):
        self.recoverable_delay = recoverable_delay
        self.result_delay = result_delay
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap
        self.max_attempts = max_attempts
        self.reset_window = reset_window

    @classmethod
    def from_settings(cls, settings) -> "RestartPolicy":
        return cls(
            recoverable_delay=settings.recoverable_restart_delay,
            result_delay=settings.result_restart_delay,
            backoff_base=settings.serious_backoff_base,
            backoff_cap=settings.serious_backoff_cap,
            max_attempts=settings.max_restart_attempts,
            reset_window=settings.restart_reset_window,
        )

    def decide(self, error_class: RecognitionErrorClass, attempts: int, elapsed: float) -> RestartDecision:
        """Decide how to proceed after a recognizer error.

        Args:
            error_class: Class of the error that ended the cycle
            attempts: Consecutive serious errors so far
            elapsed: Seconds since the last serious error (inf if none)

        Returns:
            RestartDecision with the delay and the new attempt count
        """
        if error_class is RecognitionErrorClass.RECOVERABLE:
            return RestartDecision(RestartAction.RESTART, self.recoverable_delay, attempts)

        window_reset = elapsed >= self.reset_window
        if window_reset:
            attempts = 0
        attempts += 1

        if attempts >= self.max_attempts:
            return RestartDecision(RestartAction.HALT, 0.0, attempts, window_reset)

        delay = min(self.backoff_base * attempts, self.backoff_cap)
        return RestartDecision(RestartAction.RESTART, delay, attempts, window_reset)

    def after_result(self) -> RestartDecision:
        """Re-arm after a completed utterance; a result ends the serious-error streak."""
        return RestartDecision(RestartAction.RESTART, self.result_delay, 0)
