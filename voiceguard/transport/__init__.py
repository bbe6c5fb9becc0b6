"""Outbound alert transports."""

from .base import AbstractTransport, TransportResult
from .telegram import TelegramTransport, format_alert_html

__all__ = ["AbstractTransport", "TransportResult", "TelegramTransport", "format_alert_html"]
