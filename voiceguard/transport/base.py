"""Abstract base class for outbound alert transports."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..errors import TransportError


@dataclass(frozen=True)
class TransportResult:
    """Outcome of one send call."""
    ok: bool
    error: Optional[TransportError] = None

    @classmethod
    def success(cls) -> "TransportResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, error: TransportError) -> "TransportResult":
        return cls(ok=False, error=error)

    @property
    def reason(self) -> Optional[str]:
        return str(self.error) if self.error else None


class AbstractTransport(ABC):
    """Single-recipient push-message capability.

    Each call performs one network round trip bounded by the timeout and does
    not retry.
    """

    @abstractmethod
    async def send_message(self, text: str, timeout: Optional[float] = None) -> TransportResult:
        pass

    @abstractmethod
    async def send_location(self, latitude: float, longitude: float,
                            caption: str = "", timeout: Optional[float] = None) -> TransportResult:
        pass

    async def send_test_message(self, timeout: Optional[float] = None) -> TransportResult:
        """Send a harmless message proving the channel works."""
        return await self.send_message("Test message: the emergency alert system is configured correctly.",
                                       timeout=timeout)
