"""Services that run the listening pipeline."""

from .notifications import (
    NotificationPublisher,
    PARTIAL_TOPIC,
    DETECTION_TOPIC,
    STATUS_TOPIC,
    NOTICE_TOPIC,
)
from .wake_lock import WakeLock
from .permissions import PermissionProvider, StaticPermissions, SystemPermissions
from .alert_dispatcher import AlertDispatcher, render_message
from .listener_controller import ListenerController

__all__ = [
    "NotificationPublisher",
    "PARTIAL_TOPIC",
    "DETECTION_TOPIC",
    "STATUS_TOPIC",
    "NOTICE_TOPIC",
    "WakeLock",
    "PermissionProvider",
    "StaticPermissions",
    "SystemPermissions",
    "AlertDispatcher",
    "render_message",
    "ListenerController",
]
