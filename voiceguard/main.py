"""Main application entry point for VoiceGuard."""

import sys
import time
import asyncio
import argparse
import logging
from pathlib import Path
from typing import Optional

from rich.console import Console

from .config import VoiceGuardConfig
from .errors import ConfigError, PreconditionError
from .location.static_source import StaticLocationSource
from .location.tracker import LocationTracker
from .models.session import ListenerStatus
from .services.alert_dispatcher import AlertDispatcher
from .services.listener_controller import ListenerController
from .services.notifications import NotificationPublisher
from .services.permissions import SystemPermissions
from .storage.settings_store import SettingsStore
from .transport.telegram import TELEGRAM_API_URL, TelegramTransport
from .ui.console_monitor import ConsoleMonitor

logger = logging.getLogger(__name__)


class Server:

    def __init__(self, config_path: Optional[str], log_level: Optional[str] = None):
        # Load configuration
        self.config = VoiceGuardConfig(config_path)
        # Set up logging (command line overrides config)
        setup_logging(self.config, log_level or self.config.get('logging.level', 'INFO'))
        self.settings = self.config.get_listener_settings()
        self.store = SettingsStore(self.config.get_data_directory(), config=self.config)
        self.console = Console()
        self.should_exit = False

        self.controller: Optional[ListenerController] = None
        self.monitor: Optional[ConsoleMonitor] = None

    def build_transport(self) -> TelegramTransport:
        recipient = self.store.get_recipient_config()
        if recipient is None:
            raise ConfigError("Telegram recipient not configured (telegram.bot_token / telegram.chat_id)")
        api_url = self.config.get('telegram.api_url', TELEGRAM_API_URL)
        return TelegramTransport.from_recipient(recipient, self.settings, api_url=api_url)

    def init(self):
        # Google recognition is only needed for the listener itself
        from .recognition.google_source import GoogleSpeechRecognitionSource

        logger.info("Initializing services...")
        publisher = NotificationPublisher()

        location_source = StaticLocationSource.from_config(self.config)
        if location_source is None:
            logger.warning("No location source configured; alerts will say location is unavailable")
        permissions = SystemPermissions(location_enabled=location_source is not None)
        tracker = LocationTracker(location_source, self.settings, permission_check=permissions.has_location)

        dispatcher = AlertDispatcher(self.build_transport(), tracker, publisher, self.settings)

        recognizer = GoogleSpeechRecognitionSource(
            credentials_path=self.config.get_google_credentials_path(),
            sample_rate=self.config.get('audio.sample_rate', 16000),
            chunk_size=self.config.get('audio.chunk_size', 1024),
            use_enhanced=self.config.get('google_cloud.use_enhanced', True),
            max_cycle_seconds=self.config.get('recognition.max_cycle_seconds', 15.0),
        )
        recognizer.initialize()

        self.monitor = ConsoleMonitor(self.console, show_partials=self.settings.partial_results)
        self.controller = ListenerController(
            recognizer=recognizer,
            tracker=tracker,
            dispatcher=dispatcher,
            store=self.store,
            permissions=permissions,
            publisher=publisher,
            settings=self.settings,
        )

    def run(self, duration: Optional[int] = None) -> int:
        """Listen until interrupted, the duration elapses or the listener fails.

        Returns:
            Process exit code
        """
        try:
            self.controller.start()
            self.console.print(f"🎤 Listening for '{self.controller.trigger.keyword}' - Ctrl+C to stop",
                               style="bold green")
            start_time = time.time()
            while not self.should_exit:
                if duration and time.time() - start_time >= duration:
                    break
                if self.controller.get_session_snapshot().status is ListenerStatus.FAILED:
                    return 1
                time.sleep(1)
            return 0
        finally:
            self.cleanup()

    def cleanup(self):
        if self.controller:
            self.controller.shutdown()
            self.controller = None
        if self.monitor:
            self.monitor.shutdown()
            self.monitor = None

    def print_status(self) -> None:
        trigger = self.store.get_trigger_word()
        recipient = self.store.get_recipient_config()
        location = StaticLocationSource.from_config(self.config)

        self.console.print(f"Trigger word: {trigger or '[red]not set[/red]'}")
        if recipient:
            self.console.print(f"Telegram: chat {recipient.chat_id}, token {recipient.masked_token}")
        else:
            self.console.print("Telegram: [red]not configured[/red]")
        if location:
            self.console.print(f"Location: static ({location.latitude}, {location.longitude})")
        else:
            self.console.print("Location: [yellow]not configured[/yellow]")
        if self.store.should_show_running_indicator():
            self.console.print("⚠️ Listener was running less than 10 minutes ago", style="yellow")

    def send_test_alert(self) -> bool:
        result = asyncio.run(self.build_transport().send_test_message())
        if result.ok:
            self.console.print("✅ Test message sent", style="green")
        else:
            self.console.print(f"❌ Test message failed: {result.reason}", style="red")
        return result.ok

    def validate(self) -> bool:
        bot = asyncio.run(self.build_transport().validate())
        if bot:
            self.console.print(f"✅ Bot token valid: {bot}", style="green")
        else:
            self.console.print("❌ Bot token rejected or Telegram unreachable", style="red")
        return bot is not None


def setup_logging(config, level: str = "INFO") -> None:

    """Set up logging configuration from YAML config."""
    # Get log file path from config
    log_file_path = config.get('logging.file_path', 'data/logs/voiceguard.log')
    console_output = config.get('logging.console_output', True)

    # Create logs directory if it doesn't exist
    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    # Set up handlers
    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    # Log startup
    logger = logging.getLogger(__name__)
    logger.info("=" * 50)
    logger.info("VoiceGuard starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="VoiceGuard - voice-triggered emergency alerts",
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: looks for voiceguard.yaml)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: logging.level from config, else INFO)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="VoiceGuard v0.1.0"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Listen for the trigger word and send alerts")
    run_parser.add_argument(
        "--duration",
        type=int,
        help="Stop after this many seconds (default: run until Ctrl+C)"
    )

    trigger_parser = subparsers.add_parser("set-trigger", help="Store the trigger word")
    trigger_parser.add_argument("word", help="Word or phrase that triggers an alert")

    subparsers.add_parser("status", help="Show trigger, recipient and location configuration")
    subparsers.add_parser("test-alert", help="Send a test message to the configured chat")
    subparsers.add_parser("validate", help="Check the Telegram bot token")

    return parser


def main() -> None:
    """Main entry point for VoiceGuard."""
    args = build_parser().parse_args()

    server = None
    try:
        server = Server(args.config, args.log_level)
        if args.command == "run":
            server.init()
            sys.exit(server.run(args.duration))
        elif args.command == "set-trigger":
            word = server.store.set_trigger_word(args.word)
            server.console.print(f"✅ Trigger word set to '{word}'", style="green")
        elif args.command == "status":
            server.print_status()
        elif args.command == "test-alert":
            sys.exit(0 if server.send_test_alert() else 1)
        elif args.command == "validate":
            sys.exit(0 if server.validate() else 1)
    except KeyboardInterrupt:
        if server:
            server.cleanup()
        print("\n👋 Goodbye!")
    except (PreconditionError, ConfigError, FileNotFoundError) as e:
        print(f"❌ {e}")
        sys.exit(2)
    except Exception as e:
        print(f"❌ Error: {e}")
        logging.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
