"""Immutable runtime settings built from the YAML configuration."""

import logging
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ..errors import ConfigError

logger = logging.getLogger(__name__)


DEFAULT_MESSAGE_TEMPLATE = """I NEED HELP URGENTLY!

📍 Location: {location}
🕐 Time: {time}
🔊 Triggered by: "{trigger}"

⚠️ Please contact the authorities if I do not answer within 15 minutes."""

# (settings field, config key path)
_CONFIG_KEYS = [
    ("locale", "recognition.locale"),
    ("partial_results", "recognition.partial_results"),
    ("dispatch_on_partial", "recognition.dispatch_on_partial"),
    ("history_size", "recognition.history_size"),
    ("recoverable_restart_delay", "restart.recoverable_delay"),
    ("result_restart_delay", "restart.result_delay"),
    ("serious_backoff_base", "restart.backoff_base"),
    ("serious_backoff_cap", "restart.backoff_cap"),
    ("max_restart_attempts", "restart.max_attempts"),
    ("restart_reset_window", "restart.reset_window"),
    ("location_min_interval_ms", "location.min_interval_ms"),
    ("location_min_distance_m", "location.min_distance_m"),
    ("location_staleness", "location.staleness_seconds"),
    ("location_fetch_timeout", "location.fetch_timeout"),
    ("last_known_max_age", "location.last_known_max_age"),
    ("message_template", "alert.message_template"),
    ("live_location_caption", "alert.live_location_caption"),
    ("alert_log_size", "alert.log_size"),
    ("transport_connect_timeout", "transport.connect_timeout"),
    ("transport_total_timeout", "transport.total_timeout"),
    ("live_location_period", "transport.live_location_period"),
]


class ListenerSettings(BaseModel):
    """Timeouts, restart budget and templates passed to the core at construction."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Recognition
    locale: str = "en-US"
    partial_results: bool = True
    dispatch_on_partial: bool = True
    history_size: int = Field(50, ge=1)

    # Restart policy (seconds)
    recoverable_restart_delay: float = Field(0.5, ge=0)
    result_restart_delay: float = Field(0.5, ge=0)
    serious_backoff_base: float = Field(1.0, gt=0)
    serious_backoff_cap: float = Field(30.0, gt=0)
    max_restart_attempts: int = Field(5, ge=1)
    restart_reset_window: float = Field(30.0, gt=0)

    # Location
    location_min_interval_ms: int = Field(30000, ge=0)
    location_min_distance_m: float = Field(10.0, ge=0)
    location_staleness: float = Field(120.0, gt=0)
    location_fetch_timeout: float = Field(10.0, ge=0)
    last_known_max_age: float = Field(300.0, gt=0)

    # Alerting
    message_template: str = DEFAULT_MESSAGE_TEMPLATE
    live_location_caption: str = "📍 Live location - emergency in progress"
    alert_log_size: int = Field(50, ge=1)

    # Transport (seconds)
    transport_connect_timeout: float = Field(15.0, gt=0)
    transport_total_timeout: float = Field(20.0, gt=0)
    live_location_period: int = Field(300, ge=60, le=86400)

    @model_validator(mode="after")
    def _check_ranges(self) -> "ListenerSettings":
        if self.serious_backoff_cap < self.serious_backoff_base:
            raise ValueError("restart.backoff_cap must be >= restart.backoff_base")
        if self.transport_total_timeout < self.transport_connect_timeout:
            raise ValueError("transport.total_timeout must be >= transport.connect_timeout")
        return self

    @classmethod
    def from_config(cls, config) -> "ListenerSettings":
        """Build settings from a VoiceGuardConfig, keeping defaults for missing keys.

        Raises:
            ConfigError: If any configured value is invalid
        """
        values: Dict[str, Any] = {}
        for field_name, key_path in _CONFIG_KEYS:
            value = config.get(key_path)
            if value is not None:
                values[field_name] = value

        try:
            settings = cls(**values)
        except ValidationError as e:
            raise ConfigError(f"Invalid listener settings: {e}") from e

        logger.debug(f"Listener settings: {settings.model_dump(exclude={'message_template'})}")
        return settings


class RecipientConfig(BaseModel):
    """Telegram bot credentials and destination chat."""

    model_config = ConfigDict(frozen=True)

    bot_token: str = Field(min_length=1)
    chat_id: str = Field(min_length=1)

    @property
    def masked_token(self) -> str:
        if len(self.bot_token) <= 8:
            return "***"
        return f"{self.bot_token[:4]}...{self.bot_token[-4:]}"
