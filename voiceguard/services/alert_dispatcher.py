"""Alert dispatcher: turns a trigger match into a delivered emergency message."""

import asyncio
import logging
import queue
import threading
from collections import deque
from concurrent.futures import Future
from datetime import datetime
from typing import Callable, List, NamedTuple, Optional

from ..config.settings import ListenerSettings
from ..location.tracker import LocationTracker
from ..models.alert import AlertOutcome, AlertRecord
from ..models.events import UserNotice
from ..models.transcription import Transcript, TriggerConfig
from ..transport.base import AbstractTransport, TransportResult
from .notifications import NotificationPublisher

logger = logging.getLogger(__name__)

TIME_FORMAT = "%d/%m/%Y %H:%M:%S"


def render_message(template: str, location: str, trigger: str, when: datetime) -> str:
    """Substitute {location}, {time} and {trigger}; other braces are left alone."""
    return (template
            .replace("{location}", location)
            .replace("{time}", when.strftime(TIME_FORMAT))
            .replace("{trigger}", trigger))


class AlertTask(NamedTuple):
    """A unit of work for the dispatcher thread."""
    transcript: Optional[Transcript]
    trigger: Optional[TriggerConfig]
    result: Optional[Future] = None  # Set for test messages


class AlertDispatcher:
    """Sends alerts one at a time from a dedicated worker thread.

    The worker owns an asyncio loop used to drive the transport. Matches are
    queued, so a second alert waits for the first to finish and submissions
    never overlap.
    """

    def __init__(self,
                 transport: AbstractTransport,
                 tracker: LocationTracker,
                 publisher: Optional[NotificationPublisher] = None,
                 settings: Optional[ListenerSettings] = None,
                 now: Callable[[], datetime] = datetime.now):
        """Initialize alert dispatcher.

        Args:
            transport: Outbound channel for the alert text and coordinates
            tracker: Source of the best-effort location snapshot
            publisher: Receives user notices for sent and failed alerts
            settings: Template, caption and log size
            now: Wall clock used for the {time} placeholder and records
        """
        self.transport = transport
        self.tracker = tracker
        self.publisher = publisher or NotificationPublisher()
        self.settings = settings or ListenerSettings()
        self._now = now

        self._history = deque(maxlen=self.settings.alert_log_size)
        self._history_lock = threading.Lock()

        self.task_queue: "queue.Queue[Optional[AlertTask]]" = queue.Queue()
        self.shutdown_event = threading.Event()
        self._pending = 0
        self._pending_cond = threading.Condition()

        self._worker = threading.Thread(target=self._worker_loop, daemon=True)
        self._worker.name = "AlertDispatcher"
        self._worker.start()
        logger.info("AlertDispatcher worker started")

    def on_match(self, transcript: Transcript, trigger: TriggerConfig) -> bool:
        """Queue an alert for a matched transcript. Never blocks.

        Returns:
            False if the dispatcher is shut down and the alert was dropped
        """
        if self.shutdown_event.is_set():
            logger.error(f"Alert for '{transcript.text}' dropped: dispatcher is shut down")
            return False
        logger.warning(f"🚨 Trigger '{trigger.keyword}' matched in '{transcript.text}', queueing alert")
        self._enqueue(AlertTask(transcript=transcript, trigger=trigger))
        return True

    def send_test_alert(self, timeout: Optional[float] = None) -> TransportResult:
        """Send a test message through the same worker and transport.

        Args:
            timeout: Seconds to wait for the result (None waits indefinitely)
        """
        if self.shutdown_event.is_set():
            raise RuntimeError("AlertDispatcher is shut down")
        future: Future = Future()
        self._enqueue(AlertTask(transcript=None, trigger=None, result=future))
        return future.result(timeout)

    def _enqueue(self, task: AlertTask) -> None:
        with self._pending_cond:
            self._pending += 1
        self.task_queue.put(task)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait until every queued alert has been processed. Returns False on timeout."""
        with self._pending_cond:
            return self._pending_cond.wait_for(lambda: self._pending == 0, timeout)

    @property
    def pending(self) -> int:
        with self._pending_cond:
            return self._pending

    def get_history(self) -> List[AlertRecord]:
        with self._history_lock:
            return list(self._history)

    def clear_history(self) -> None:
        with self._history_lock:
            self._history.clear()
        logger.info("Alert history cleared")

    def shutdown(self, timeout: Optional[float] = 5.0) -> bool:
        """Process queued alerts, then stop the worker.

        Returns:
            True if the worker exited within the timeout
        """
        if not self.shutdown_event.is_set():
            self.shutdown_event.set()
            self.task_queue.put(None)
        self._worker.join(timeout)
        stopped = not self._worker.is_alive()
        if not stopped:
            logger.warning("AlertDispatcher worker still busy after shutdown timeout")
        return stopped

    def _worker_loop(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            while True:
                task = self.task_queue.get()
                if task is None:
                    logger.debug("AlertDispatcher received sentinel, exiting.")
                    self.task_queue.task_done()
                    break
                try:
                    if task.result is not None:
                        self._run_test(loop, task.result)
                    else:
                        self._dispatch(loop, task.transcript, task.trigger)
                finally:
                    self.task_queue.task_done()
                    with self._pending_cond:
                        self._pending -= 1
                        self._pending_cond.notify_all()
        finally:
            loop.close()
            logger.debug("AlertDispatcher worker exiting and closing its event loop.")

    def _run_test(self, loop: asyncio.AbstractEventLoop, future: Future) -> None:
        try:
            result = loop.run_until_complete(self.transport.send_test_message())
        except Exception as e:
            logger.error(f"Test alert failed unexpectedly: {e}", exc_info=True)
            future.set_exception(e)
            return
        future.set_result(result)

    def _dispatch(self, loop: asyncio.AbstractEventLoop, transcript: Transcript, trigger: TriggerConfig) -> None:
        """Locate, render, send and record one alert. Never raises."""
        started_at = self._now()
        body = ""
        fix = None
        location_sent = False
        try:
            snapshot = self.tracker.get_best_effort_location()
            fix = snapshot.fix
            body = render_message(self.settings.message_template, snapshot.text, transcript.text, started_at)

            result = loop.run_until_complete(self.transport.send_message(body))
            if result.ok:
                outcome = AlertOutcome.success()
                if fix is not None and self.tracker.has_permission():
                    location_result = loop.run_until_complete(self.transport.send_location(
                        fix.latitude, fix.longitude, self.settings.live_location_caption))
                    location_sent = location_result.ok
                    if not location_sent:
                        logger.warning(f"Alert sent but location was not: {location_result.reason}")
            else:
                outcome = AlertOutcome.failure(result.reason or "unknown transport error")
        except Exception as e:
            logger.error(f"Unexpected error while dispatching alert: {e}", exc_info=True)
            outcome = AlertOutcome.failure(f"Internal error: {e}")

        record = AlertRecord(
            trigger_text=transcript.text,
            message_body=body,
            started_at=started_at,
            sent_at=self._now(),
            outcome=outcome,
            location_fix=fix,
            location_sent=location_sent,
        )
        with self._history_lock:
            self._history.append(record)

        if outcome.sent:
            logger.warning(f"✅ Emergency alert sent for '{transcript.text}'")
            notice = UserNotice(
                level="info",
                title="Emergency alert sent",
                body="Location shared as well." if location_sent else "Sent without live location.",
            )
        else:
            logger.error(f"❌ Emergency alert failed: {outcome.reason}")
            notice = UserNotice(level="error", title="Emergency alert failed", body=outcome.reason)
        self.publisher.publish_notice(notice)
