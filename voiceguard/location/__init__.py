"""Location sources and best-fix tracking."""

from .base import AbstractLocationSource
from .static_source import StaticLocationSource
from .tracker import LocationTracker, is_better_fix, format_fix, UNAVAILABLE_TEXT, NO_PERMISSION_TEXT

__all__ = [
    "AbstractLocationSource",
    "StaticLocationSource",
    "LocationTracker",
    "is_better_fix",
    "format_fix",
    "UNAVAILABLE_TEXT",
    "NO_PERMISSION_TEXT",
]
