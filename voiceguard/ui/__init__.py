"""Terminal user interface."""

from .console_monitor import ConsoleMonitor

__all__ = ["ConsoleMonitor"]
