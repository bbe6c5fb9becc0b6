"""Abstract base classes for recognition sources."""

from abc import ABC, abstractmethod
from enum import Enum
import logging

logger = logging.getLogger(__name__)


class RecognitionErrorClass(Enum):
    """How the restart policy treats a recognizer error."""
    RECOVERABLE = "recoverable"
    SERIOUS = "serious"


class RecognitionErrorCode(Enum):
    """Error codes a recognition source may report for a listening cycle."""
    NETWORK_TIMEOUT = 1
    NETWORK = 2
    AUDIO = 3
    SERVER = 4
    CLIENT = 5
    SPEECH_TIMEOUT = 6
    NO_MATCH = 7
    RECOGNIZER_BUSY = 8
    INSUFFICIENT_PERMISSIONS = 9

    @property
    def error_class(self) -> RecognitionErrorClass:
        if self in (RecognitionErrorCode.NO_MATCH, RecognitionErrorCode.SPEECH_TIMEOUT):
            return RecognitionErrorClass.RECOVERABLE
        return RecognitionErrorClass.SERIOUS

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]


_DESCRIPTIONS = {
    RecognitionErrorCode.NETWORK_TIMEOUT: "Network timeout",
    RecognitionErrorCode.NETWORK: "Network error",
    RecognitionErrorCode.AUDIO: "Audio error",
    RecognitionErrorCode.SERVER: "Server error",
    RecognitionErrorCode.CLIENT: "Client error",
    RecognitionErrorCode.SPEECH_TIMEOUT: "Speech timeout",
    RecognitionErrorCode.NO_MATCH: "No match",
    RecognitionErrorCode.RECOGNIZER_BUSY: "Recognizer busy",
    RecognitionErrorCode.INSUFFICIENT_PERMISSIONS: "Insufficient permissions",
}


class RecognitionListener(ABC):
    """Receives the events of one listening cycle.

    Exactly one terminal event (on_final or on_error) is delivered per cycle.
    Events may arrive on any thread.
    """

    @abstractmethod
    def on_ready(self) -> None:
        pass

    @abstractmethod
    def on_partial(self, text: str) -> None:
        pass

    @abstractmethod
    def on_final(self, text: str) -> None:
        pass

    @abstractmethod
    def on_error(self, code: RecognitionErrorCode) -> None:
        pass


class AbstractRecognitionSource(ABC):
    """Abstract base class for continuous speech recognizers."""

    @abstractmethod
    def arm(self, locale: str, partial_results: bool, listener: RecognitionListener) -> None:
        """Start one listening cycle.

        Args:
            locale: Recognition language code (e.g. 'en-US', 'es-ES')
            partial_results: Whether to emit interim transcripts
            listener: Receives the events of this cycle

        The caller must call arm() again after the terminal event to keep listening.
        Re-arming from inside the terminal callback is allowed.

        Raises:
            RecognitionError: If the cycle cannot be started; its code is
                              handled like an error reported by the cycle
        """
        pass

    @abstractmethod
    def cancel(self) -> None:
        """Abort the active cycle, if any. No further events are delivered for it."""
        pass

    def destroy(self) -> None:
        """Release recognizer resources for good."""
        self.cancel()
