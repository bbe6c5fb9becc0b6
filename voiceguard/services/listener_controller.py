"""Listener controller: the state machine that keeps the recognizer armed."""

import math
import time
import asyncio
import logging
import threading
from collections import deque
from contextlib import ExitStack
from dataclasses import replace
from typing import Any, Callable, List, Optional

from ..config.settings import ListenerSettings
from ..errors import PreconditionError, RecognitionError
from ..location.tracker import LocationTracker
from ..models.alert import AlertRecord
from ..models.events import DetectionEvent, PartialTranscriptEvent, StatusEvent, UserNotice
from ..models.location import LocationFix
from ..models.session import ListenerSession, ListenerStatus
from ..models.transcription import Transcript, TriggerConfig
from ..recognition.base import (
    AbstractRecognitionSource,
    RecognitionErrorClass,
    RecognitionErrorCode,
    RecognitionListener,
)
from ..recognition.matcher import matches, normalize
from ..recognition.restart_policy import RestartPolicy
from ..storage.settings_store import SettingsStore
from .alert_dispatcher import AlertDispatcher
from .notifications import NotificationPublisher
from .permissions import PermissionProvider
from .wake_lock import WakeLock

logger = logging.getLogger(__name__)


class _CycleListener(RecognitionListener):
    """Funnels one listening cycle's events onto the controller loop.

    The cycle number travels with every event so the controller can drop
    events from cycles that are no longer current.
    """

    def __init__(self, controller: "ListenerController", cycle: int):
        self._controller = controller
        self._cycle = cycle

    def on_ready(self) -> None:
        self._controller._post(self._controller._handle_ready, self._cycle)

    def on_partial(self, text: str) -> None:
        self._controller._post(self._controller._handle_partial, self._cycle, text)

    def on_final(self, text: str) -> None:
        self._controller._post(self._controller._handle_final, self._cycle, text)

    def on_error(self, code: RecognitionErrorCode) -> None:
        self._controller._post(self._controller._handle_error, self._cycle, code)


class ListenerController:
    """Owns the listening session and drives the recognizer through restarts.

    All session state lives on one worker thread running an asyncio loop.
    Public methods hop onto that loop and wait for the result, recognizer
    and location callbacks are posted to it, and restart delays are loop
    timers. Resources acquired by start() sit in an ExitStack that is closed
    exactly once, by stop() or by a terminal failure.
    """

    def __init__(self,
                 recognizer: AbstractRecognitionSource,
                 tracker: LocationTracker,
                 dispatcher: AlertDispatcher,
                 store: SettingsStore,
                 permissions: PermissionProvider,
                 publisher: Optional[NotificationPublisher] = None,
                 settings: Optional[ListenerSettings] = None,
                 wake_lock: Optional[WakeLock] = None,
                 policy: Optional[RestartPolicy] = None,
                 clock: Callable[[], float] = time.time):
        """Initialize listener controller and start its worker thread.

        Args:
            recognizer: Speech source armed once per listening cycle
            tracker: Best-fix location tracker started with each session
            dispatcher: Receives matched transcripts
            store: Trigger word and session-resume persistence
            permissions: Microphone and location grants
            publisher: Destination for partial/detection/status/notice events
            settings: Listener settings (defaults if omitted)
            wake_lock: Keep-awake resource held while running
            policy: Restart policy (built from settings if omitted)
            clock: Time source in Unix seconds
        """
        self.recognizer = recognizer
        self.tracker = tracker
        self.dispatcher = dispatcher
        self.store = store
        self.permissions = permissions
        self.publisher = publisher or NotificationPublisher()
        self.settings = settings or ListenerSettings()
        self.wake_lock = wake_lock or WakeLock()
        self.policy = policy or RestartPolicy.from_settings(self.settings)
        self._clock = clock

        self._session = ListenerSession()
        self._trigger: Optional[TriggerConfig] = None
        self._history = deque(maxlen=self.settings.history_size)
        self._resources: Optional[ExitStack] = None
        self._restart_handle: Optional[asyncio.TimerHandle] = None
        self._cycle = 0  # Also the utterance id of the current cycle
        self._alerted_utterance: Optional[int] = None
        self._closed = False

        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_loop, daemon=True)
        self._thread.name = "ListenerController"
        self._thread.start()
        logger.info("ListenerController initialized")

    # Worker loop plumbing

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_forever()
        finally:
            self._loop.close()
            logger.debug("ListenerController loop closed")

    def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Run fn on the worker loop and return its result, re-raising its errors."""
        if threading.current_thread() is self._thread:
            return fn(*args)
        if self._closed:
            raise RuntimeError("ListenerController is shut down")

        async def _invoke():
            return fn(*args)

        return asyncio.run_coroutine_threadsafe(_invoke(), self._loop).result()

    def _post(self, fn: Callable[..., Any], *args: Any) -> None:
        """Schedule fn on the worker loop from any thread without waiting."""
        try:
            self._loop.call_soon_threadsafe(fn, *args)
        except RuntimeError:
            logger.debug(f"Dropping {fn.__name__}: controller loop is closed")

    # Public control surface

    def start(self, trigger: Optional[str] = None, alerts_enabled: bool = True) -> ListenerSession:
        """Start a listening session.

        Args:
            trigger: Trigger word; read from the settings store if None
            alerts_enabled: When False, matches are detected but not dispatched

        Returns:
            Snapshot of the session after starting (or the running one)

        Raises:
            PreconditionError: If the trigger word is empty or the microphone
                               permission is missing
        """
        return self._call(self._start, trigger, alerts_enabled)

    def stop(self) -> ListenerSession:
        """Stop listening and release every resource. Safe to call in any state."""
        return self._call(self._stop)

    def shutdown(self, timeout: float = 5.0) -> None:
        """Stop the session, then stop the worker loop, recognizer and dispatcher."""
        if self._closed:
            return
        try:
            self.stop()
        finally:
            self._closed = True
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout)
            self.recognizer.destroy()
            self.dispatcher.shutdown(timeout)
            logger.info("ListenerController shut down")

    def set_trigger_word(self, word: str) -> str:
        """Validate and persist a trigger word; used from the next start().

        Raises:
            ConfigError: If the word is empty
        """
        return self.store.set_trigger_word(word)

    def clear_history(self) -> None:
        self._call(self._history.clear)
        self.dispatcher.clear_history()

    def get_session_snapshot(self) -> ListenerSession:
        return self._call(self._snapshot)

    def _snapshot(self) -> ListenerSession:
        return replace(self._session)

    def get_recognized_history(self) -> List[Transcript]:
        return self._call(list, self._history)

    def get_alert_history(self) -> List[AlertRecord]:
        return self.dispatcher.get_history()

    @property
    def trigger(self) -> Optional[TriggerConfig]:
        """Trigger snapshot of the current (or last) session."""
        return self._trigger

    # Transitions (worker loop only)

    def _start(self, trigger: Optional[str], alerts_enabled: bool) -> ListenerSession:
        if self._session.running:
            logger.info("Listener already running")
            return replace(self._session)

        keyword = normalize(trigger) if trigger is not None else self.store.get_trigger_word()
        if not keyword:
            raise PreconditionError("Trigger word is not configured")
        if not self.permissions.has_microphone():
            raise PreconditionError("Microphone permission not granted")

        if self._session.status is ListenerStatus.FAILED:
            logger.info(f"Starting fresh session after failure: {self._session.failure_reason}")

        self._trigger = TriggerConfig.from_keyword(keyword, enabled=alerts_enabled)
        self._alerted_utterance = None
        self._session = ListenerSession(running=True, status=ListenerStatus.STARTING,
                                        started_at=self._clock())
        self._emit_status(f"Starting listener for '{keyword}'")

        stack = ExitStack()
        try:
            stack.enter_context(self.wake_lock)
            if self.permissions.has_location():
                if self.tracker.start(on_fix=self._on_location_fix):
                    stack.callback(self.tracker.stop)
            else:
                logger.warning("⚠️ Location permission not granted; alerts will be sent without location")
            stack.callback(self.recognizer.cancel)
            self.store.save_session_state(True)
        except Exception:
            stack.close()
            self._session = ListenerSession()
            self._emit_status("Listener failed to start")
            raise
        self._resources = stack

        logger.info(f"🎤 Listening for trigger word '{keyword}'")
        self._arm()
        return replace(self._session)

    def _stop(self) -> ListenerSession:
        if not self._session.running and self._resources is None \
                and self._session.status is ListenerStatus.IDLE:
            logger.debug("Listener already stopped")
            return replace(self._session)

        self._teardown()
        self._session = ListenerSession()
        self._emit_status("Listener stopped")
        logger.info("🛑 Listener stopped")
        return replace(self._session)

    def _teardown(self) -> None:
        """Cancel timers, invalidate the cycle and release resources once."""
        self._cancel_restart()
        self._cycle += 1
        self._session.listening = False

        stack, self._resources = self._resources, None
        if stack is not None:
            try:
                stack.close()
            except Exception as e:
                logger.error(f"Error releasing listener resources: {e}", exc_info=True)
            try:
                self.store.save_session_state(False)
            except OSError as e:
                logger.error(f"Error clearing session state: {e}")
        # Unblock a dispatch waiting for a fresh fix
        self.tracker.cancel_pending()

    def _fail(self, reason: str) -> None:
        logger.error(f"❌ Listener failed: {reason}")
        self._teardown()
        self._session.running = False
        self._session.status = ListenerStatus.FAILED
        self._session.failure_reason = reason
        self._emit_status("Listener stopped after repeated errors")
        self.publisher.publish_notice(UserNotice(level="error", title="Listener stopped", body=reason))

    def _arm(self) -> None:
        self._restart_handle = None
        if not self._session.running:
            return

        self._cycle += 1
        cycle = self._cycle
        if self._session.status is not ListenerStatus.STARTING:
            self._set_status(ListenerStatus.STARTING)
        try:
            self.recognizer.arm(self.settings.locale, self.settings.partial_results,
                                _CycleListener(self, cycle))
        except RecognitionError as e:
            logger.error(f"Failed to arm recognizer: {e}")
            # Counts as a cycle that ended with the reported error
            self._session.listening = True
            self._handle_error(cycle, e.code)
            return
        except Exception as e:
            logger.error(f"Failed to arm recognizer: {e}", exc_info=True)
            self._session.listening = True
            self._handle_error(cycle, RecognitionErrorCode.CLIENT)
            return

        self._session.listening = True
        self._set_status(ListenerStatus.LISTENING)

    def _schedule_restart(self, delay: float) -> None:
        self._cancel_restart()
        self._restart_handle = self._loop.call_later(delay, self._arm)
        logger.debug(f"Recognizer restart scheduled in {delay:.2f}s")

    def _cancel_restart(self) -> None:
        if self._restart_handle is not None:
            self._restart_handle.cancel()
            self._restart_handle = None

    # Recognizer and location events (worker loop only)

    def _is_current(self, cycle: int) -> bool:
        return self._session.running and self._session.listening and cycle == self._cycle

    def _handle_ready(self, cycle: int) -> None:
        if self._is_current(cycle):
            logger.debug(f"Recognizer ready (utterance {cycle})")

    def _handle_partial(self, cycle: int, text: str) -> None:
        if not self._is_current(cycle):
            return
        self.publisher.publish_partial(PartialTranscriptEvent(text=text, utterance_id=cycle))
        if self.settings.dispatch_on_partial:
            self._maybe_dispatch(Transcript(text=text, is_partial=True, utterance_id=cycle))

    def _handle_final(self, cycle: int, text: str) -> None:
        if not self._is_current(cycle):
            return
        self._session.listening = False
        self._session.detection_count += 1
        transcript = Transcript(text=text, is_partial=False, utterance_id=cycle)
        self._history.append(transcript)
        self._set_status(ListenerStatus.PROCESSING)

        logger.info(f"📝 Heard: '{text}'")
        self.publisher.publish_detection(DetectionEvent(
            text=text,
            utterance_id=cycle,
            detection_count=self._session.detection_count,
            contains_keyword=matches(text, self._trigger.keyword),
        ))
        self._maybe_dispatch(transcript)

        decision = self.policy.after_result()
        self._session.restart_attempts = decision.attempts
        self._session.last_restart_at = None
        self._schedule_restart(decision.delay)

    def _handle_error(self, cycle: int, code: RecognitionErrorCode) -> None:
        if not self._is_current(cycle):
            return
        self._session.listening = False

        if code.error_class is RecognitionErrorClass.RECOVERABLE:
            logger.debug(f"Recognizer {code.description.lower()}, restarting")
            decision = self.policy.decide(code.error_class, self._session.restart_attempts, 0.0)
            self._schedule_restart(decision.delay)
            return

        now = self._clock()
        last = self._session.last_restart_at
        elapsed = now - last if last is not None else math.inf
        decision = self.policy.decide(code.error_class, self._session.restart_attempts, elapsed)
        self._session.restart_attempts = decision.attempts
        self._session.last_restart_at = now
        if decision.window_reset and last is not None:
            logger.info("Serious error counter reset after quiet period")

        if not decision.should_restart:
            self._fail(f"{code.description} after {decision.attempts} consecutive recognizer errors")
            return

        logger.warning(f"⚠️ Recognizer error: {code.description} "
                       f"({decision.attempts}/{self.policy.max_attempts}), "
                       f"restarting in {decision.delay:.1f}s")
        self._set_status(ListenerStatus.STARTING,
                         f"{code.description}, restarting in {decision.delay:.1f}s")
        self._schedule_restart(decision.delay)

    def _maybe_dispatch(self, transcript: Transcript) -> None:
        """Dispatch at most once per utterance."""
        if self._alerted_utterance == transcript.utterance_id:
            return
        if not matches(transcript.text, self._trigger.keyword):
            return
        self._alerted_utterance = transcript.utterance_id
        if not self._trigger.enabled:
            logger.info(f"Trigger matched in '{transcript.text}' but alerts are disabled")
            return
        self.dispatcher.on_match(transcript, self._trigger)

    def _on_location_fix(self, fix: LocationFix) -> None:
        # Called on the location source's thread
        self._post(self._handle_fix, fix)

    def _handle_fix(self, fix: LocationFix) -> None:
        if self._session.running:
            self.tracker.offer(fix)

    # Notifications

    def _set_status(self, status: ListenerStatus, message: str = "") -> None:
        self._session.status = status
        self._emit_status(message)

    def _emit_status(self, message: str = "") -> None:
        session = self._session
        self.publisher.publish_status(StatusEvent(
            status=session.status,
            running=session.running,
            listening=session.listening,
            detection_count=session.detection_count,
            message=message,
            failure_reason=session.failure_reason,
        ))
