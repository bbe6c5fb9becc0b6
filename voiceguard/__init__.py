"""VoiceGuard - voice-triggered emergency alerts."""

__version__ = "0.1.0"
