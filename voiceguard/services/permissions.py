"""Capability checks consulted before the listener starts."""

import logging
from abc import ABC, abstractmethod

from ..audio.capture import check_microphone_available

logger = logging.getLogger(__name__)


class PermissionProvider(ABC):
    """Answers whether the OS granted microphone and location access."""

    @abstractmethod
    def has_microphone(self) -> bool:
        pass

    @abstractmethod
    def has_location(self) -> bool:
        pass


class StaticPermissions(PermissionProvider):
    """Fixed answers, for configuration-driven setups and tests."""

    def __init__(self, microphone: bool = True, location: bool = True):
        self.microphone = microphone
        self.location = location

    def has_microphone(self) -> bool:
        return self.microphone

    def has_location(self) -> bool:
        return self.location


class SystemPermissions(PermissionProvider):
    """Probes PyAudio for an input device; location follows configuration.

    Args:
        location_enabled: Whether a location source is configured and allowed
    """

    def __init__(self, location_enabled: bool = True):
        self.location_enabled = location_enabled

    def has_microphone(self) -> bool:
        available = check_microphone_available()
        if not available:
            logger.warning("⚠️ No microphone input device available")
        return available

    def has_location(self) -> bool:
        return self.location_enabled
