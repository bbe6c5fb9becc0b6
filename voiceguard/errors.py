"""Exception taxonomy for VoiceGuard."""

from enum import Enum
from typing import Optional


class VoiceGuardError(Exception):
    """Base class for all VoiceGuard errors."""


class PreconditionError(VoiceGuardError):
    """A required capability or configuration is missing; start() cannot proceed."""


class ConfigError(VoiceGuardError, ValueError):
    """Invalid configuration value (e.g. an empty trigger word)."""


class RecognitionError(VoiceGuardError):
    """Error reported by a recognition source for a single listening cycle."""

    def __init__(self, code, message: Optional[str] = None):
        self.code = code
        super().__init__(message or f"Recognition error: {code.name}")

    @property
    def error_class(self):
        return self.code.error_class


class TransportErrorKind(Enum):
    """Why an outbound message could not be delivered."""
    NETWORK = "network"
    AUTH = "auth"
    SERVER_REJECTED = "server_rejected"


class TransportError(VoiceGuardError):
    """Outbound message delivery failed."""

    def __init__(self, kind: TransportErrorKind, reason: str):
        self.kind = kind
        self.reason = reason
        super().__init__(f"{kind.value}: {reason}")
