"""Speech recognition sources, trigger matching and restart policy."""

from .base import (
    AbstractRecognitionSource,
    RecognitionListener,
    RecognitionErrorCode,
    RecognitionErrorClass,
)
from .matcher import matches, normalize
from .restart_policy import RestartPolicy, RestartDecision, RestartAction

__all__ = [
    "AbstractRecognitionSource",
    "RecognitionListener",
    "RecognitionErrorCode",
    "RecognitionErrorClass",
    "matches",
    "normalize",
    "RestartPolicy",
    "RestartDecision",
    "RestartAction",
]
