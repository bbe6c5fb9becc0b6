"""Unit tests for VoiceGuardConfig and ListenerSettings."""

from pathlib import Path

import pytest
import yaml

from voiceguard.config import DEFAULT_MESSAGE_TEMPLATE, ListenerSettings, RecipientConfig, VoiceGuardConfig
from voiceguard.errors import ConfigError


def write_config(directory, data) -> str:
    path = Path(directory) / "voiceguard.yaml"
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f)
    return str(path)


@pytest.mark.unit
class TestVoiceGuardConfig:
    """Test cases for the YAML configuration loader."""

    def test_get_and_set_dot_paths(self, temp_data_dir):
        config = VoiceGuardConfig(write_config(temp_data_dir, {"recognition": {"locale": "es-ES"}}))

        assert config.get("recognition.locale") == "es-ES"
        assert config.get("recognition.missing", "default") == "default"
        assert config.get("nothing.here") is None

        config.set("alert.log_size", 10)
        assert config.get("alert.log_size") == 10

    def test_relative_paths_resolved_against_config_dir(self, temp_data_dir):
        config = VoiceGuardConfig(write_config(temp_data_dir, {
            "storage": {"data_directory": "data"},
            "logging": {"file_path": "logs/voiceguard.log"},
            "google_cloud": {"credentials_path": "creds.json"},
        }))

        assert config.get("storage.data_directory") == str(Path(temp_data_dir) / "data")
        assert config.get("logging.file_path") == str(Path(temp_data_dir) / "logs/voiceguard.log")
        assert config.get("google_cloud.credentials_path") == str(Path(temp_data_dir) / "creds.json")

    def test_missing_file(self, temp_data_dir):
        with pytest.raises(FileNotFoundError):
            VoiceGuardConfig(str(Path(temp_data_dir) / "absent.yaml"))

    def test_empty_file(self, temp_data_dir):
        path = Path(temp_data_dir) / "voiceguard.yaml"
        path.write_text("")
        with pytest.raises(ConfigError):
            VoiceGuardConfig(str(path))

    def test_invalid_yaml(self, temp_data_dir):
        path = Path(temp_data_dir) / "voiceguard.yaml"
        path.write_text("recognition: [unclosed\n")
        with pytest.raises(ConfigError):
            VoiceGuardConfig(str(path))

    def test_non_mapping_root(self, temp_data_dir):
        path = Path(temp_data_dir) / "voiceguard.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            VoiceGuardConfig(str(path))

    def test_missing_google_credentials(self, temp_data_dir):
        config = VoiceGuardConfig(write_config(temp_data_dir, {"recognition": {}}))
        with pytest.raises(ConfigError):
            config.get_google_credentials_path()

    def test_recipient_from_telegram_section(self, temp_data_dir):
        config = VoiceGuardConfig(write_config(temp_data_dir, {
            "telegram": {"bot_token": "123456:ABCDEF", "chat_id": 987654},
        }))
        recipient = config.get_recipient_config()

        assert recipient == RecipientConfig(bot_token="123456:ABCDEF", chat_id="987654")

    def test_recipient_missing(self, temp_data_dir):
        config = VoiceGuardConfig(write_config(temp_data_dir, {"telegram": {"bot_token": ""}}))
        assert config.get_recipient_config() is None


@pytest.mark.unit
class TestListenerSettings:
    """Test cases for ListenerSettings."""

    def test_defaults(self):
        settings = ListenerSettings()

        assert settings.locale == "en-US"
        assert settings.dispatch_on_partial is True
        assert settings.history_size == 50
        assert settings.recoverable_restart_delay == 0.5
        assert settings.serious_backoff_base == 1.0
        assert settings.serious_backoff_cap == 30.0
        assert settings.max_restart_attempts == 5
        assert settings.restart_reset_window == 30.0
        assert settings.location_staleness == 120.0
        assert settings.location_fetch_timeout == 10.0
        assert settings.last_known_max_age == 300.0
        assert settings.alert_log_size == 50
        assert settings.transport_connect_timeout == 15.0
        assert settings.transport_total_timeout == 20.0
        assert settings.message_template == DEFAULT_MESSAGE_TEMPLATE

    def test_is_immutable(self):
        settings = ListenerSettings()
        with pytest.raises(Exception):
            settings.locale = "es-ES"

    def test_from_config_reads_sections(self, temp_data_dir):
        config = VoiceGuardConfig(write_config(temp_data_dir, {
            "recognition": {"locale": "es-ES", "dispatch_on_partial": False},
            "restart": {"max_attempts": 3, "backoff_cap": 10},
            "location": {"fetch_timeout": 2.5},
            "alert": {"message_template": "Help at {location}"},
            "transport": {"total_timeout": 30},
        }))
        settings = ListenerSettings.from_config(config)

        assert settings.locale == "es-ES"
        assert settings.dispatch_on_partial is False
        assert settings.max_restart_attempts == 3
        assert settings.serious_backoff_cap == 10.0
        assert settings.location_fetch_timeout == 2.5
        assert settings.message_template == "Help at {location}"
        assert settings.transport_total_timeout == 30.0
        # Untouched keys keep their defaults
        assert settings.history_size == 50

    def test_from_config_rejects_invalid_values(self, temp_data_dir):
        config = VoiceGuardConfig(write_config(temp_data_dir, {"restart": {"max_attempts": 0}}))
        with pytest.raises(ConfigError):
            ListenerSettings.from_config(config)

    def test_cap_below_base_rejected(self, temp_data_dir):
        config = VoiceGuardConfig(write_config(temp_data_dir, {
            "restart": {"backoff_base": 5, "backoff_cap": 1},
        }))
        with pytest.raises(ConfigError):
            config.get_listener_settings()

    def test_total_timeout_below_connect_rejected(self):
        with pytest.raises(ValueError):
            ListenerSettings(transport_connect_timeout=10, transport_total_timeout=5)

    def test_masked_token(self):
        assert RecipientConfig(bot_token="123456:ABCDEFGH", chat_id="1").masked_token == "1234...EFGH"
        assert RecipientConfig(bot_token="short", chat_id="1").masked_token == "***"
