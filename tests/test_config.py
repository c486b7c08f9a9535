"""Tests for configuration loading, settings and exceptions."""

from pathlib import Path

import pytest
from cryptography.fernet import Fernet
from pydantic import ValidationError as PydanticValidationError

from exambot.core.config import AppConfig, BotSettings, get_settings, reset_settings
from exambot.core.config_loader import load_config, safe_config_summary, substitute_env_vars
from exambot.core.exceptions import (
    ConfigurationError,
    ExamBotError,
    RecordNotFoundError,
    ScheduleStateError,
    SelectorNotFoundError,
    ValidationError,
)

REPO_ROOT = Path(__file__).parent.parent


class TestLoadConfig:
    def test_loads_yaml_with_env_substitution(self, tmp_path, monkeypatch):
        monkeypatch.setenv("EXAM_API_URL", "https://api.example.com/exams")
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "exam_api:\n"
            "  api_url: ${EXAM_API_URL}\n"
            "monitoring:\n"
            "  poll_interval: 2\n"
            "  max_duration: 600\n",
            encoding="utf-8",
        )

        config = load_config(str(config_file))

        assert config.exam_api.api_url == "https://api.example.com/exams"
        assert config.monitoring.poll_interval == 2
        assert config.browser_pool.size == 20

    def test_invalid_values_raise_configuration_error(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("booking:\n  booking_url_template: https://x/no-oid\n")

        with pytest.raises(ConfigurationError):
            load_config(str(config_file))

    def test_falls_back_to_example_outside_production(self, monkeypatch):
        monkeypatch.chdir(REPO_ROOT)
        config = load_config("config/does-not-exist.yaml")
        assert isinstance(config, AppConfig)

    def test_no_fallback_in_production(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ENV", "production")
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.yaml"))


class TestEnvSubstitution:
    def test_missing_variable_becomes_empty(self, monkeypatch):
        monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)
        assert substitute_env_vars({"a": ["x${NOT_SET_ANYWHERE}y"]}, False) == {"a": ["xy"]}

    def test_critical_variable_required_in_production(self, monkeypatch):
        monkeypatch.delenv("TELEGRAM_TOKEN", raising=False)
        with pytest.raises(ConfigurationError, match="TELEGRAM_TOKEN"):
            substitute_env_vars("${TELEGRAM_TOKEN}", True)

    def test_safe_config_summary_redacts(self):
        summary = safe_config_summary({"db": {"database_url": "postgresql://u:p@h/d"}, "n": 1})
        assert summary == {"db": {"database_url": "[REDACTED]"}, "n": 1}


class TestSettings:
    def test_testing_generates_encryption_key(self, monkeypatch):
        monkeypatch.delenv("ENCRYPTION_KEY", raising=False)
        settings = BotSettings()
        assert settings.env == "testing"
        assert settings.encryption_key is not None

    def test_defaults(self):
        settings = get_settings()
        assert settings.health_check_port == 3001
        assert settings.use_proxies is False
        assert get_settings() is settings
        reset_settings()
        assert get_settings() is not settings

    def test_production_rejects_default_database_url(self, monkeypatch):
        monkeypatch.setenv("ENV", "production")
        monkeypatch.setenv("TELEGRAM_TOKEN", "123:abc")
        monkeypatch.delenv("DATABASE_URL", raising=False)
        with pytest.raises(PydanticValidationError, match="DATABASE_URL"):
            BotSettings(_env_file=None)

    def test_production_requires_token(self, monkeypatch):
        monkeypatch.setenv("ENV", "production")
        monkeypatch.setenv("DATABASE_URL", "postgresql://bot:pw@db:5432/exambot")
        monkeypatch.setenv("ENCRYPTION_KEY", Fernet.generate_key().decode())
        monkeypatch.delenv("TELEGRAM_TOKEN", raising=False)
        with pytest.raises(PydanticValidationError, match="TELEGRAM_TOKEN"):
            BotSettings(_env_file=None)

    def test_invalid_log_level(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "chatty")
        with pytest.raises(PydanticValidationError):
            BotSettings(_env_file=None)


class TestExceptions:
    def test_to_dict(self):
        error = ExamBotError("boom", recoverable=False, details={"k": "v"})
        data = error.to_dict()
        assert data["error"] == "ExamBotError"
        assert data["message"] == "boom"
        assert data["recoverable"] is False
        assert data["details"] == {"k": "v"}

    def test_validation_error_keeps_user_message(self):
        error = ValidationError("❌ Invalid input.", field="email")
        assert error.message == "❌ Invalid input."
        assert error.details == {"field": "email"}
        assert not error.recoverable

    def test_record_not_found(self):
        error = RecordNotFoundError("Schedule", 7)
        assert "Schedule with id '7' not found" == error.message

    def test_schedule_state_error(self):
        error = ScheduleStateError(3, "paused", "trigger")
        assert error.details == {"schedule_id": 3, "status": "paused", "action": "trigger"}

    def test_selector_not_found_lists_tried(self):
        error = SelectorNotFoundError("book_for_me", ["a", "b"])
        assert "Tried: a, b" in error.message
