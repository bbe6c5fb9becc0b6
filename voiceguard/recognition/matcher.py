"""Trigger word matching for transcripts."""

from typing import Optional


def normalize(text: Optional[str]) -> str:
    """Trim and lowercase text for comparison."""
    return (text or "").strip().lower()


def matches(transcript: Optional[str], trigger: Optional[str]) -> bool:
    """Return True if the normalized trigger occurs in the normalized transcript.

    An empty trigger never matches; empty trigger words are rejected before
    a session can start.
    """
    keyword = normalize(trigger)
    if not keyword:
        return False
    return keyword in normalize(transcript)
