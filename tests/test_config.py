"""
Tests for configuration, structured logging and the error taxonomy
"""

import json
import logging

import pytest

from banking_core import config as config_module
from banking_core.config import BankingConfig, get_config, reload_config
from banking_core.errors import (
    AuthenticationFailure, BankingError, ConflictError, ValidationError
)
from banking_core.logging_config import JSONFormatter, get_logger, log_action, setup_logging


class TestBankingConfig:
    """Test environment-driven configuration"""

    def test_defaults(self, monkeypatch):
        for name in ("BANKING_DATABASE_URL", "BANKING_ENCRYPTION_KEY", "BANKING_JWT_SECRET",
                     "BANKING_MIN_SIGNUP_AGE", "BANKING_MAX_FUNDING_MINOR_UNITS"):
            monkeypatch.delenv(name, raising=False)
        config = BankingConfig(_env_file=None)

        assert config.database_url == "sqlite:///banking.db"
        assert config.encryption_key == ""
        assert config.jwt_secret == ""
        assert config.max_funding_minor_units == 100_000_000_000
        assert config.jwt_algorithm == "HS256"
        assert config.session_validity_minutes == 1440
        assert config.session_expiry_buffer_seconds == 60
        assert config.min_signup_age == 18
        assert config.account_number_max_attempts == 100
        assert config.api_port == 8090

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("BANKING_DATABASE_URL", "memory://")
        monkeypatch.setenv("BANKING_ENCRYPTION_KEY", "from-env")
        monkeypatch.setenv("BANKING_SESSION_EXPIRY_BUFFER_SECONDS", "90")

        config = BankingConfig(_env_file=None)
        assert config.database_url == "memory://"
        assert config.encryption_key == "from-env"
        assert config.session_expiry_buffer_seconds == 90

    def test_reload_config(self, monkeypatch):
        original = get_config()
        try:
            monkeypatch.setenv("BANKING_MIN_SIGNUP_AGE", "21")
            reloaded = reload_config()
            assert reloaded.min_signup_age == 21
            assert get_config() is reloaded
        finally:
            config_module.config = original


class TestLogging:

    def test_json_formatter(self):
        record = logging.LogRecord("banking_core.accounts", logging.INFO, __file__, 1,
                                   "Account created", None, None)
        record.user_id = "user-1"
        record.action = "create_account"
        record.extra = {"account_id": 7}

        entry = json.loads(JSONFormatter().format(record))
        assert entry["level"] == "INFO"
        assert entry["message"] == "Account created"
        assert entry["user_id"] == "user-1"
        assert entry["action"] == "create_account"
        assert entry["extra"] == {"account_id": 7}
        assert "resource" not in entry

    def test_sensitive_extra_keys_are_masked(self):
        record = logging.LogRecord("banking_core.users", logging.INFO, __file__, 1,
                                   "User created", None, None)
        record.extra = {"user": {"national_id": "123-45-6789", "email": "jane@example.com"},
                        "token": "eyJ..."}

        output = JSONFormatter().format(record)
        entry = json.loads(output)
        assert "123-45-6789" not in output
        assert entry["extra"]["user"]["national_id"] == "[redacted]"
        assert entry["extra"]["user"]["email"] == "jane@example.com"
        assert entry["extra"]["token"] == "[redacted]"

    def test_log_action(self, caplog):
        logger = get_logger("banking_core_test.actions")
        with caplog.at_level(logging.INFO, logger="banking_core_test.actions"):
            log_action(logger, "info", "Account funded", user_id="user-1",
                       action="fund_account", resource="accounts", extra={"account_id": 1})

        record = caplog.records[-1]
        assert record.getMessage() == "Account funded"
        assert record.user_id == "user-1"
        assert record.resource == "accounts"
        assert record.extra == {"account_id": 1}

    def test_setup_logging_writes_json_file(self, tmp_path):
        log_file = tmp_path / "banking.log"
        logger = setup_logging(level="DEBUG", fmt="json", log_file=str(log_file),
                               logger_name="banking_core_test.file")
        log_action(logger, "warning", "Login failed", action="login_failed")
        for handler in logger.handlers:
            handler.flush()
            handler.close()

        entry = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert entry["level"] == "WARNING"
        assert entry["action"] == "login_failed"

    def test_setup_logging_text_format(self, tmp_path):
        log_file = tmp_path / "banking.log"
        logger = setup_logging(level="INFO", fmt="text", log_file=str(log_file),
                               logger_name="banking_core_test.text")
        logger.info("plain line")
        for handler in logger.handlers:
            handler.flush()
            handler.close()

        assert "INFO [banking_core_test.text] plain line" in log_file.read_text()


class TestErrors:

    def test_to_dict(self):
        assert ConflictError("User already exists").to_dict() == {
            "kind": "conflict", "detail": "User already exists"
        }

    def test_validation_error_is_value_error(self):
        error = ValidationError("bad amount")
        assert isinstance(error, ValueError)
        assert isinstance(error, BankingError)
        assert error.reason is None

    def test_kinds_are_distinct(self):
        assert AuthenticationFailure.kind != ValidationError.kind

    def test_raised_message(self):
        with pytest.raises(BankingError, match="Session expired"):
            raise AuthenticationFailure("Session expired")
