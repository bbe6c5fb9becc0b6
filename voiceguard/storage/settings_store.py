"""Persisted key/value settings: trigger word, recipient and resume state."""

import json
import time
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from ..config.settings import RecipientConfig
from ..errors import ConfigError
from ..models.session import SessionResumeState
from ..recognition.matcher import normalize

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "settings.json"
RUNNING_INDICATOR_WINDOW = 10 * 60  # seconds

KEY_TRIGGER_WORD = "trigger_word"
KEY_BOT_TOKEN = "telegram_bot_token"
KEY_CHAT_ID = "telegram_chat_id"
KEY_WAS_RUNNING = "was_running"
KEY_STARTED_AT = "started_at"


class SettingsStore:
    """Small JSON document in the data directory, rewritten on every change."""

    def __init__(self, data_dir: str = "./data", config=None, clock: Callable[[], float] = time.time):
        """Initialize settings store.

        Args:
            data_dir: Directory holding settings.json (created if missing)
            config: Optional VoiceGuardConfig used as recipient fallback
            clock: Time source in Unix seconds
        """
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.settings_file = self.data_dir / SETTINGS_FILENAME
        self.config = config
        self._clock = clock
        self._lock = threading.Lock()
        self._values = self._load()

        logger.info(f"SettingsStore initialized with file: {self.settings_file}")

    def _load(self) -> Dict[str, Any]:
        if not self.settings_file.exists():
            return {}
        try:
            with open(self.settings_file, 'r', encoding='utf-8') as f:
                values = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Error reading settings file, starting empty: {e}")
            return {}
        if not isinstance(values, dict):
            logger.error("Settings file does not hold an object, starting empty")
            return {}
        return values

    def _save(self) -> None:
        tmp_file = self.settings_file.with_suffix(".json.tmp")
        with open(tmp_file, 'w', encoding='utf-8') as f:
            json.dump(self._values, f, indent=2, ensure_ascii=False)
        tmp_file.replace(self.settings_file)
        logger.debug(f"Settings saved: {sorted(self._values)}")

    def _update(self, **values: Any) -> None:
        with self._lock:
            for key, value in values.items():
                if value is None:
                    self._values.pop(key, None)
                else:
                    self._values[key] = value
            self._save()

    def _get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._values.get(key, default)

    # Trigger word

    def get_trigger_word(self) -> str:
        """Stored trigger word, normalized; empty string if none."""
        return normalize(self._get(KEY_TRIGGER_WORD, ""))

    def set_trigger_word(self, word: str) -> str:
        """Validate and persist a trigger word.

        Returns:
            The normalized word that was stored

        Raises:
            ConfigError: If the word is empty after trimming
        """
        normalized = normalize(word)
        if not normalized:
            raise ConfigError("Trigger word must not be empty")
        self._update(**{KEY_TRIGGER_WORD: normalized})
        logger.info(f"Trigger word set to '{normalized}'")
        return normalized

    def clear_trigger_word(self) -> None:
        self._update(**{KEY_TRIGGER_WORD: None})
        logger.info("Trigger word cleared")

    # Recipient

    def get_recipient_config(self) -> Optional[RecipientConfig]:
        """Stored recipient, falling back to the config file's telegram section."""
        token = self._get(KEY_BOT_TOKEN)
        chat_id = self._get(KEY_CHAT_ID)
        if token and chat_id:
            return RecipientConfig(bot_token=token, chat_id=chat_id)
        if self.config is not None:
            return self.config.get_recipient_config()
        return None

    def set_recipient_config(self, bot_token: str, chat_id: str) -> RecipientConfig:
        """Raises ConfigError if either value is empty."""
        try:
            recipient = RecipientConfig(bot_token=(bot_token or "").strip(),
                                        chat_id=str(chat_id or "").strip())
        except ValidationError as e:
            raise ConfigError(f"Invalid recipient: {e}") from e
        self._update(**{KEY_BOT_TOKEN: recipient.bot_token, KEY_CHAT_ID: recipient.chat_id})
        logger.info(f"Recipient set: chat {recipient.chat_id}, token {recipient.masked_token}")
        return recipient

    # Session resume state

    def save_session_state(self, running: bool) -> None:
        started_at = self._clock() if running else None
        self._update(**{KEY_WAS_RUNNING: bool(running), KEY_STARTED_AT: started_at})

    def load_session_state(self) -> SessionResumeState:
        return SessionResumeState(
            was_running=bool(self._get(KEY_WAS_RUNNING, False)),
            started_at=self._get(KEY_STARTED_AT),
        )

    def should_show_running_indicator(self) -> bool:
        """True when the listener was marked running less than ten minutes ago.

        Only informs the UI; nothing is re-armed from this.
        """
        state = self.load_session_state()
        if not state.was_running or state.started_at is None:
            return False
        return self._clock() - state.started_at < RUNNING_INDICATOR_WINDOW
