"""Pytest configuration and fixtures for VoiceGuard tests."""

import time
import asyncio
import logging
import tempfile
import threading
from typing import Callable, List, Optional
from unittest.mock import Mock, patch

import pytest
from pubsub import pub

from voiceguard.config.settings import ListenerSettings
from voiceguard.location.base import AbstractLocationSource
from voiceguard.location.tracker import LocationTracker
from voiceguard.models.location import LocationFix
from voiceguard.recognition.base import AbstractRecognitionSource, RecognitionListener
from voiceguard.services.alert_dispatcher import AlertDispatcher
from voiceguard.services.listener_controller import ListenerController
from voiceguard.services.notifications import NotificationPublisher
from voiceguard.services.permissions import StaticPermissions
from voiceguard.services.wake_lock import WakeLock
from voiceguard.storage.settings_store import SettingsStore
from voiceguard.transport.base import AbstractTransport, TransportResult


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests with all collaborators faked")
    config.addinivalue_line("markers", "integration: tests wiring several real components together")
    config.addinivalue_line("markers", "slow: tests that take more than a second")


class FakeRecognitionSource(AbstractRecognitionSource):
    """Records arm/cancel calls; tests drive the listener of the latest cycle."""

    def __init__(self, arm_error: Optional[Exception] = None):
        self.arm_error = arm_error
        self.arm_calls = []
        self.cancel_count = 0
        self.destroy_count = 0
        self._lock = threading.Lock()

    def arm(self, locale: str, partial_results: bool, listener: RecognitionListener) -> None:
        with self._lock:
            self.arm_calls.append((locale, partial_results, listener))
        if self.arm_error:
            raise self.arm_error

    def cancel(self) -> None:
        with self._lock:
            self.cancel_count += 1

    def destroy(self) -> None:
        self.destroy_count += 1
        self.cancel()

    @property
    def arm_count(self) -> int:
        with self._lock:
            return len(self.arm_calls)

    @property
    def listener(self) -> RecognitionListener:
        with self._lock:
            return self.arm_calls[-1][2]


class FakeLocationSource(AbstractLocationSource):
    """Location source whose fixes are pushed by the test."""

    def __init__(self, last_known: Optional[LocationFix] = None):
        self.last_known = last_known
        self.on_fix: Optional[Callable[[LocationFix], None]] = None
        self.request_count = 0
        self.cancel_count = 0

    def request_updates(self, min_interval_ms, min_distance_m, on_fix) -> None:
        self.request_count += 1
        self.on_fix = on_fix

    def cancel_updates(self) -> None:
        self.cancel_count += 1
        self.on_fix = None

    def get_last_known(self) -> Optional[LocationFix]:
        return self.last_known

    def emit(self, fix: LocationFix) -> None:
        if self.on_fix:
            self.on_fix(fix)


class FakeTransport(AbstractTransport):
    """Scripted transport that records calls and overlapping sends."""

    def __init__(self, results: Optional[List[TransportResult]] = None, delay: float = 0.0):
        self.results = list(results or [])
        self.delay = delay
        self.messages: List[str] = []
        self.locations = []
        self.test_messages = 0
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    async def send_message(self, text, timeout=None) -> TransportResult:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            with self._lock:
                self.messages.append(text)
                return self.results.pop(0) if self.results else TransportResult.success()
        finally:
            with self._lock:
                self.active -= 1

    async def send_location(self, latitude, longitude, caption="", timeout=None) -> TransportResult:
        self.locations.append((latitude, longitude, caption))
        return TransportResult.success()

    async def send_test_message(self, timeout=None) -> TransportResult:
        self.test_messages += 1
        return TransportResult.success()


class TopicRecorder:
    """Collects events published on a pypubsub topic."""

    def __init__(self, topic: str):
        self.topic = topic
        self.events = []
        self._lock = threading.Lock()
        pub.subscribe(self._on_event, topic)

    def _on_event(self, event) -> None:
        with self._lock:
            self.events.append(event)

    def snapshot(self) -> list:
        with self._lock:
            return list(self.events)


def make_fix(latitude=40.4168, longitude=-3.7038, accuracy_m=None, captured_at=None, provider="gps"):
    return LocationFix(
        latitude=latitude,
        longitude=longitude,
        provider=provider,
        captured_at=time.time() if captured_at is None else captured_at,
        accuracy_m=accuracy_m,
    )


@pytest.fixture(autouse=True)
def reset_pubsub():
    """Drop pypubsub subscriptions between tests."""
    yield
    pub.unsubAll()


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def wait_until():
    """Poll a predicate until it is true or the timeout passes."""
    def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()
    return _wait_until


@pytest.fixture
def record_topic():
    """Factory for TopicRecorder; keeps recorders alive for the test (pypubsub holds weak refs)."""
    recorders = []

    def _record(topic: str) -> TopicRecorder:
        recorder = TopicRecorder(topic)
        recorders.append(recorder)
        return recorder

    yield _record


@pytest.fixture
def fast_settings():
    """Listener settings with millisecond delays."""
    return ListenerSettings(
        recoverable_restart_delay=0.01,
        result_restart_delay=0.01,
        serious_backoff_base=0.01,
        serious_backoff_cap=0.05,
        max_restart_attempts=5,
        restart_reset_window=30.0,
        location_fetch_timeout=0.2,
    )


@pytest.fixture
def settings_store(temp_data_dir):
    return SettingsStore(temp_data_dir)


@pytest.fixture
def fake_recognizer():
    return FakeRecognitionSource()


@pytest.fixture
def fake_location_source():
    return FakeLocationSource()


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def permissions():
    return StaticPermissions(microphone=True, location=True)


@pytest.fixture
def tracker(fake_location_source, fast_settings, permissions):
    return LocationTracker(fake_location_source, fast_settings, permission_check=permissions.has_location)


@pytest.fixture
def dispatcher(fake_transport, tracker, fast_settings):
    dispatcher = AlertDispatcher(fake_transport, tracker, NotificationPublisher(), fast_settings)
    yield dispatcher
    dispatcher.shutdown(timeout=2.0)


@pytest.fixture
def wake_lock():
    return WakeLock(tag="test")


@pytest.fixture
def controller(fake_recognizer, tracker, dispatcher, settings_store, permissions, fast_settings, wake_lock):
    """ListenerController wired to fakes; trigger word 'alerta' preconfigured."""
    settings_store.set_trigger_word("alerta")
    controller = ListenerController(
        recognizer=fake_recognizer,
        tracker=tracker,
        dispatcher=dispatcher,
        store=settings_store,
        permissions=permissions,
        publisher=NotificationPublisher(),
        settings=fast_settings,
        wake_lock=wake_lock,
    )
    yield controller
    controller.shutdown(timeout=2.0)


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Configure mock stream
        mock_stream.read.return_value = b'\x00' * 2048  # Silent audio

        # Configure mock PyAudio instance
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }
