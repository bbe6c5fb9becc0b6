"""Console monitor that prints listener notifications with rich.

It subscribes to the pipeline topics, prints partial transcripts, detections,
status changes and alert notices as they arrive, and prints a session
summary on shutdown.
"""

import logging
import threading
from typing import List, Optional

from pubsub import pub
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..models.events import DetectionEvent, PartialTranscriptEvent, StatusEvent, UserNotice
from ..models.session import ListenerStatus
from ..services.notifications import DETECTION_TOPIC, NOTICE_TOPIC, PARTIAL_TOPIC, STATUS_TOPIC

logger = logging.getLogger(__name__)

_STATUS_STYLES = {
    ListenerStatus.IDLE: "dim",
    ListenerStatus.STARTING: "yellow",
    ListenerStatus.LISTENING: "green",
    ListenerStatus.PROCESSING: "cyan",
    ListenerStatus.FAILED: "bold red",
}


class ConsoleMonitor:
    """Prints pipeline notifications to the terminal."""

    def __init__(self, console: Optional[Console] = None, show_partials: bool = True):
        """Initialize console monitor.

        Args:
            console: Rich console to print to (a new one if None)
            show_partials: Whether to print interim transcripts
        """
        self.console = console or Console()
        self.show_partials = show_partials
        self.lock = threading.RLock()
        self.detections: List[DetectionEvent] = []
        self.notices: List[UserNotice] = []
        self.last_status: Optional[StatusEvent] = None

        pub.subscribe(self._on_partial, PARTIAL_TOPIC)
        pub.subscribe(self._on_detection, DETECTION_TOPIC)
        pub.subscribe(self._on_status, STATUS_TOPIC)
        pub.subscribe(self._on_notice, NOTICE_TOPIC)
        logger.info("ConsoleMonitor subscribed to listener topics")

    def _on_partial(self, event: PartialTranscriptEvent) -> None:
        if self.show_partials:
            self.console.print(f"  … {event.text}", style="dim italic")

    def _on_detection(self, event: DetectionEvent) -> None:
        with self.lock:
            self.detections.append(event)
        style = "bold red" if event.contains_keyword else "white"
        marker = "🚨" if event.contains_keyword else "📝"
        self.console.print(f"{marker} [{event.detection_count}] {event.text}", style=style)

    def _on_status(self, event: StatusEvent) -> None:
        with self.lock:
            previous = self.last_status
            self.last_status = event
        # Restart cycles flip between STARTING and LISTENING; only show real changes
        if previous and previous.status == event.status and not event.message:
            return
        text = f"● {event.status.value.upper()}"
        if event.message:
            text += f" - {event.message}"
        if event.failure_reason:
            text += f" ({event.failure_reason})"
        self.console.print(text, style=_STATUS_STYLES.get(event.status, "white"))

    def _on_notice(self, event: UserNotice) -> None:
        with self.lock:
            self.notices.append(event)
        border = "red" if event.level == "error" else "green"
        self.console.print(Panel(event.body or "", title=event.title, border_style=border))

    def print_summary(self) -> None:
        """Print detections and notices collected so far."""
        with self.lock:
            detections = list(self.detections)
            notices = list(self.notices)

        table = Table(title="Session summary")
        table.add_column("#", justify="right")
        table.add_column("Time")
        table.add_column("Transcript")
        table.add_column("Trigger", justify="center")
        for event in detections:
            table.add_row(
                str(event.detection_count),
                event.timestamp.strftime("%H:%M:%S"),
                event.text,
                "✅" if event.contains_keyword else "",
            )
        self.console.print(table)
        for notice in notices:
            self.console.print(f"{notice.timestamp.strftime('%H:%M:%S')} {notice.title}: {notice.body}")

    def shutdown(self) -> None:
        for listener, topic in ((self._on_partial, PARTIAL_TOPIC),
                                (self._on_detection, DETECTION_TOPIC),
                                (self._on_status, STATUS_TOPIC),
                                (self._on_notice, NOTICE_TOPIC)):
            try:
                pub.unsubscribe(listener, topic)
            except Exception as e:
                logger.warning(f"Error during unsubscribe: {e}")
        self.print_summary()
