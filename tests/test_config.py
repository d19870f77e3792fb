"""
Test environment configuration and observability helpers.
"""

import json
import logging
import os
from unittest.mock import patch

from meetsync.core.config import AppConfig, load_config
from meetsync.observability.logger import _sanitize_title, init_sentry, log_event, timing


class TestLoadConfig:
    """Test loading settings from environment variables."""

    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            config = load_config()

        assert config.api_base_url == "http://localhost:8189"
        assert config.reconnect_delay_ms == 5000
        assert config.heartbeat_incoming_ms == 4000
        assert config.heartbeat_outgoing_ms == 4000
        assert config.day_cutoff == "18:00"
        assert config.default_duration == 60
        assert config.max_duration == 540
        assert config.sentry_dsn is None

    def test_overrides(self):
        env = {
            "API_BASE_URL": "https://meet.example.test/",
            "PUSH_URL": "wss://meet.example.test/ws",
            "REQUEST_TIMEOUT": "2.5",
            "RECONNECT_DELAY_MS": "1000",
            "DAY_CUTOFF": "17:00",
        }
        with patch.dict(os.environ, env, clear=True):
            config = load_config()

        assert config.api_base_url == "https://meet.example.test"
        assert config.push_url == "wss://meet.example.test/ws"
        assert config.request_timeout == 2.5
        assert config.reconnect_delay_ms == 1000
        assert config.day_cutoff == "17:00"

    def test_malformed_numbers_fall_back(self):
        with patch.dict(os.environ, {"RECONNECT_DELAY_MS": "soon", "REQUEST_TIMEOUT": "fast"}, clear=True):
            config = load_config()

        assert config.reconnect_delay_ms == 5000
        assert config.request_timeout == 15.0


class TestObservability:
    """Test structured logging and Sentry setup."""

    def test_sanitize_title(self):
        assert _sanitize_title("Weekly sync") == "Weekly sync"
        assert _sanitize_title("Rotate API token") == "[REDACTED]"
        assert _sanitize_title("x" * 150) == "x" * 97 + "..."

    def test_log_event_is_json(self, caplog):
        caplog.set_level(logging.INFO, logger="meetsync.observability.logger")

        log_event(action="created", source="push", meeting_id=5, title="Password reset", extra_field=1)

        entry = json.loads(caplog.records[-1].getMessage())
        assert entry["action"] == "created"
        assert entry["source"] == "push"
        assert entry["meeting_id"] == 5
        assert entry["title"] == "[REDACTED]"
        assert entry["extra_field"] == 1

    def test_timing(self):
        with timing("op") as timer:
            pass

        assert timer.get_duration_ms() >= 0

    def test_sentry_disabled_by_default(self):
        with patch.dict(os.environ, {}, clear=True):
            assert init_sentry(AppConfig(sentry_dsn="https://key@sentry.example.test/1")) is False

    def test_sentry_requires_dsn(self):
        with patch.dict(os.environ, {"OBS_ENABLED": "true"}, clear=True):
            assert init_sentry(AppConfig()) is False
            assert init_sentry() is False

    def test_sentry_initialized(self):
        config = AppConfig(sentry_dsn="https://key@sentry.example.test/1", environment="test")
        with patch.dict(os.environ, {"OBS_ENABLED": "true"}, clear=True):
            with patch("meetsync.observability.logger.sentry_sdk.init") as mock_init:
                assert init_sentry(config) is True

        kwargs = mock_init.call_args.kwargs
        assert kwargs["dsn"] == "https://key@sentry.example.test/1"
        assert kwargs["environment"] == "test"

    def test_sentry_from_environment(self):
        env = {"OBS_ENABLED": "true", "SENTRY_DSN": "https://key@sentry.example.test/2"}
        with patch.dict(os.environ, env, clear=True):
            with patch("meetsync.observability.logger.sentry_sdk.init") as mock_init:
                assert init_sentry() is True

        assert mock_init.call_args.kwargs["environment"] == "development"
