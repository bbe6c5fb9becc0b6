"""Audio capture module."""

from .capture import AudioCapture, check_microphone_available

__all__ = [
    'AudioCapture',
    'check_microphone_available'
]
