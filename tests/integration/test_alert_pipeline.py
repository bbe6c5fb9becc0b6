"""Integration tests: listener, dispatcher, location and Telegram transport wired together."""

import asyncio
import sys
import threading
from pathlib import Path

import pytest
import yaml
from aiohttp import web
from aiohttp.test_utils import TestServer

from voiceguard import main as voiceguard_main
from voiceguard.location.static_source import StaticLocationSource
from voiceguard.location.tracker import LocationTracker
from voiceguard.models.session import ListenerStatus
from voiceguard.services.alert_dispatcher import AlertDispatcher
from voiceguard.services.listener_controller import ListenerController
from voiceguard.services.notifications import NOTICE_TOPIC, NotificationPublisher
from voiceguard.transport.telegram import TelegramTransport

TOKEN = "123456:INTEGRATION"
CHAT_ID = "-100200300"


class BotApiServer:
    """Fake Bot API served from its own event loop thread."""

    def __init__(self, status: int = 200):
        self.status = status
        self.requests = []
        self._lock = threading.Lock()
        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(target=self.loop.run_forever, name="FakeBotApi", daemon=True)
        self.server = None

    async def _handle(self, request: web.Request) -> web.Response:
        form = await request.post()
        with self._lock:
            self.requests.append((request.match_info["method"], dict(form)))
        if self.status != 200:
            return web.json_response({"ok": False, "description": "Internal Server Error"}, status=self.status)
        return web.json_response({"ok": True, "result": {"first_name": "Guard", "username": "guard_bot"}})

    async def _start(self) -> None:
        app = web.Application()
        app.router.add_post(f"/bot{TOKEN}/{{method}}", self._handle)
        self.server = TestServer(app)
        await self.server.start_server()

    def start(self) -> "BotApiServer":
        self.thread.start()
        asyncio.run_coroutine_threadsafe(self._start(), self.loop).result(5)
        return self

    def stop(self) -> None:
        asyncio.run_coroutine_threadsafe(self.server.close(), self.loop).result(5)
        self.loop.call_soon_threadsafe(self.loop.stop)
        self.thread.join(5)
        self.loop.close()

    @property
    def url(self) -> str:
        return str(self.server.make_url("/"))

    def methods(self):
        with self._lock:
            return [method for method, _ in self.requests]

    def form(self, method: str) -> dict:
        with self._lock:
            return next(form for name, form in self.requests if name == method)


@pytest.fixture
def bot_api():
    api = BotApiServer().start()
    yield api
    api.stop()


@pytest.fixture
def failing_bot_api():
    api = BotApiServer(status=500).start()
    yield api
    api.stop()


@pytest.fixture
def pipeline(fake_recognizer, settings_store, permissions, fast_settings, wake_lock):
    """Factory wiring a controller to a real transport and a static location."""
    created = []

    def _build(api_url: str):
        tracker = LocationTracker(StaticLocationSource(40.4168, -3.7038, accuracy_m=12.0),
                                  fast_settings, permission_check=permissions.has_location)
        transport = TelegramTransport(TOKEN, CHAT_ID, api_url=api_url, connect_timeout=2, total_timeout=3)
        publisher = NotificationPublisher()
        dispatcher = AlertDispatcher(transport, tracker, publisher, fast_settings)
        controller = ListenerController(
            recognizer=fake_recognizer,
            tracker=tracker,
            dispatcher=dispatcher,
            store=settings_store,
            permissions=permissions,
            publisher=publisher,
            settings=fast_settings,
            wake_lock=wake_lock,
        )
        created.append(controller)
        return controller, dispatcher

    yield _build
    for controller in created:
        controller.shutdown(timeout=2.0)


@pytest.mark.integration
class TestAlertPipeline:
    """A spoken trigger ends up as Bot API requests."""

    def test_trigger_sends_message_and_location(self, pipeline, bot_api, fake_recognizer,
                                                settings_store, record_topic, wait_until):
        notices = record_topic(NOTICE_TOPIC)
        settings_store.set_trigger_word("Socorro")
        controller, dispatcher = pipeline(bot_api.url)

        controller.start()
        fake_recognizer.listener.on_final("por favor socorro ahora")

        assert wait_until(lambda: len(dispatcher.get_history()) == 1, timeout=5.0)
        assert dispatcher.wait_idle(5.0)

        assert bot_api.methods() == ["sendMessage", "sendLocation"]
        message = bot_api.form("sendMessage")
        assert message["chat_id"] == CHAT_ID
        assert message["parse_mode"] == "HTML"
        assert "EMERGENCY ALERT" in message["text"]
        assert "Lat: 40.4168, Lon: -3.7038" in message["text"]
        assert "por favor socorro ahora" in message["text"]

        location = bot_api.form("sendLocation")
        assert float(location["latitude"]) == pytest.approx(40.4168)
        assert float(location["longitude"]) == pytest.approx(-3.7038)

        record = dispatcher.get_history()[0]
        assert record.outcome.sent is True
        assert record.location_sent is True
        assert notices.snapshot()[-1].title == "Emergency alert sent"

        # The listener keeps going after an alert
        assert wait_until(lambda: fake_recognizer.arm_count >= 2)
        assert controller.get_session_snapshot().running is True

    def test_rejected_delivery_is_recorded(self, pipeline, failing_bot_api, fake_recognizer,
                                           settings_store, record_topic, wait_until):
        notices = record_topic(NOTICE_TOPIC)
        settings_store.set_trigger_word("socorro")
        controller, dispatcher = pipeline(failing_bot_api.url)

        controller.start()
        fake_recognizer.listener.on_final("socorro")

        assert wait_until(lambda: len(dispatcher.get_history()) == 1, timeout=5.0)
        record = dispatcher.get_history()[0]
        assert record.outcome.sent is False
        assert "500" in record.outcome.reason
        assert record.location_sent is False
        assert failing_bot_api.methods() == ["sendMessage"]
        assert notices.snapshot()[-1].title == "Emergency alert failed"
        assert controller.get_session_snapshot().status is not ListenerStatus.FAILED

    def test_detection_without_alerts(self, pipeline, bot_api, fake_recognizer, settings_store, wait_until):
        settings_store.set_trigger_word("socorro")
        controller, dispatcher = pipeline(bot_api.url)

        controller.start(alerts_enabled=False)
        fake_recognizer.listener.on_final("socorro")

        assert wait_until(lambda: controller.get_session_snapshot().detection_count == 1)
        assert dispatcher.wait_idle(2.0)
        assert bot_api.methods() == []
        assert dispatcher.get_history() == []


def write_config(directory: str, api_url: str) -> str:
    path = Path(directory) / "voiceguard.yaml"
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump({
            "telegram": {"bot_token": TOKEN, "chat_id": CHAT_ID, "api_url": api_url},
            "storage": {"data_directory": "data"},
            "logging": {"file_path": "logs/voiceguard.log", "console_output": False},
            "location": {"static": {"latitude": 40.4168, "longitude": -3.7038}},
        }, f)
    return str(path)


@pytest.mark.integration
class TestCommandLine:
    """CLI subcommands that do not need a microphone."""

    def run_main(self, monkeypatch, *argv) -> int:
        monkeypatch.setattr(sys, "argv", ["voiceguard", *argv])
        try:
            voiceguard_main.main()
        except SystemExit as e:
            return e.code or 0
        return 0

    def test_set_trigger_then_status(self, monkeypatch, temp_data_dir, bot_api, capsys):
        config_path = write_config(temp_data_dir, bot_api.url)

        assert self.run_main(monkeypatch, "--config", config_path, "set-trigger", "  Socorro ") == 0
        assert self.run_main(monkeypatch, "--config", config_path, "status") == 0

        output = capsys.readouterr().out
        assert "Trigger word set to 'socorro'" in output
        assert "Trigger word: socorro" in output
        assert f"chat {CHAT_ID}" in output
        assert "Location: static" in output
        assert (Path(temp_data_dir) / "data" / "settings.json").exists()

    def test_test_alert(self, monkeypatch, temp_data_dir, bot_api):
        config_path = write_config(temp_data_dir, bot_api.url)

        assert self.run_main(monkeypatch, "--config", config_path, "test-alert") == 0
        assert bot_api.methods() == ["sendMessage"]
        assert "Test message" in bot_api.form("sendMessage")["text"]

    def test_validate(self, monkeypatch, temp_data_dir, bot_api, capsys):
        config_path = write_config(temp_data_dir, bot_api.url)

        assert self.run_main(monkeypatch, "--config", config_path, "validate") == 0
        assert "Guard (@guard_bot)" in capsys.readouterr().out
        assert bot_api.methods() == ["getMe"]

    def test_test_alert_failure_exit_code(self, monkeypatch, temp_data_dir, failing_bot_api):
        config_path = write_config(temp_data_dir, failing_bot_api.url)

        assert self.run_main(monkeypatch, "--config", config_path, "test-alert") == 1

    def test_missing_config(self, monkeypatch, temp_data_dir):
        missing = str(Path(temp_data_dir) / "absent.yaml")

        assert self.run_main(monkeypatch, "--config", missing, "status") == 2
