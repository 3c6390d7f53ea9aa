"""Tests for settings, inbound token checks, errors and logging setup."""

import json
import logging

import pytest

from inference_relay.core.config import Settings, settings_errors, validate_settings
from inference_relay.core.exceptions import BadRequestError, UnauthorizedError, UnsupportedMediaTypeError
from inference_relay.core.logging import JSONFormatter, RequestIdFilter, request_id_var, setup_logging
from inference_relay.core.security import extract_bearer_token, token_is_accepted


def _settings(**overrides) -> Settings:
    values = {"inbound_tokens": "alpha"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestSettings:
    def test_defaults(self):
        settings = _settings()
        assert settings.auth_mode == "token"
        assert settings.retry_max_attempts == 3
        assert settings.allowed_origin == "*"

    def test_accepted_tokens_parsing(self):
        settings = _settings(inbound_tokens=" alpha, beta ,,gamma ")
        assert settings.accepted_tokens == frozenset({"alpha", "beta", "gamma"})

    def test_env_vars(self, monkeypatch):
        monkeypatch.setenv("AUTH_MODE", "open")
        monkeypatch.setenv("MODEL_MAP", json.dumps({"Fast": "org/fast"}))
        monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "5")
        settings = Settings(_env_file=None)
        assert not settings.auth_enabled
        assert settings.model_map == {"Fast": "org/fast"}
        assert settings.retry_max_attempts == 5

    def test_unknown_auth_mode_rejected(self):
        with pytest.raises(ValueError):
            _settings(auth_mode="maybe")

    def test_upstream_config(self):
        config = _settings(
            upstream_base_url="https://up.test",
            upstream_api_key="hf_x",
            max_new_tokens=64,
            temperature=0.2,
            retry_max_attempts=2,
        ).upstream_config()
        assert config.base_url == "https://up.test"
        assert config.api_key == "hf_x"
        assert config.generation.max_new_tokens == 64
        assert config.generation.temperature == 0.2
        assert config.generation.return_full_text is False
        assert config.retry.max_attempts == 2


class TestSettingsValidation:
    def test_valid_token_mode(self):
        assert settings_errors(_settings()) == []

    def test_token_mode_without_tokens(self):
        errors = settings_errors(_settings(inbound_tokens=" , "))
        assert len(errors) == 1
        assert "INBOUND_TOKENS" in errors[0]

    def test_open_mode_needs_no_tokens(self):
        assert settings_errors(_settings(auth_mode="open", inbound_tokens="")) == []

    def test_bad_retry_and_timeout(self):
        errors = settings_errors(_settings(retry_max_attempts=0, upstream_timeout_seconds=0))
        assert any("RETRY_MAX_ATTEMPTS" in e for e in errors)
        assert any("UPSTREAM_TIMEOUT_SECONDS" in e for e in errors)

    def test_production_rules(self):
        errors = settings_errors(_settings(app_env="production", auth_mode="open"))
        assert any("AUTH_MODE=open" in e for e in errors)
        assert any("ALLOWED_ORIGIN" in e for e in errors)

    def test_validate_exits(self):
        with pytest.raises(SystemExit) as exc_info:
            validate_settings(_settings(inbound_tokens=""))
        assert "INBOUND_TOKENS" in str(exc_info.value)


class TestBearerTokens:
    @pytest.mark.parametrize(
        "header,expected",
        [
            ("Bearer abc", "abc"),
            ("bearer abc ", "abc"),
            ("BEARER abc", "abc"),
            ("Bearer ", None),
            ("Basic abc", None),
            ("", None),
            (None, None),
        ],
    )
    def test_extract(self, header, expected):
        assert extract_bearer_token(header) == expected

    def test_token_membership(self):
        accepted = frozenset({"alpha", "beta"})
        assert token_is_accepted("beta", accepted)
        assert not token_is_accepted("gamma", accepted)
        assert not token_is_accepted("alph", accepted)
        assert not token_is_accepted("alpha", frozenset())


class TestExceptions:
    def test_status_codes(self):
        assert BadRequestError("x").status_code == 400
        assert UnsupportedMediaTypeError("x").status_code == 415

    def test_unauthorized_challenge(self):
        exc = UnauthorizedError("Unauthorized")
        assert exc.status_code == 401
        assert exc.headers == {"WWW-Authenticate": "Bearer"}
        assert exc.message == "Unauthorized"


class TestLogging:
    @pytest.fixture
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield root
        for handler in root.handlers[:]:
            root.removeHandler(handler)
        for handler in handlers:
            root.addHandler(handler)
        root.setLevel(level)

    def test_json_formatter_includes_request_id(self):
        record = logging.LogRecord("relay", logging.INFO, __file__, 1, "POST %s", ("/generate",), None)
        record.request_id = "abc123"
        data = json.loads(JSONFormatter().format(record))
        assert data["message"] == "POST /generate"
        assert data["level"] == "INFO"
        assert data["request_id"] == "abc123"

    def test_json_formatter_without_request_id(self):
        record = logging.LogRecord("relay", logging.WARNING, __file__, 1, "plain", None, None)
        data = json.loads(JSONFormatter().format(record))
        assert "request_id" not in data

    def test_setup_logging_json(self, restore_root_logger):
        setup_logging(_settings(log_json=True, log_level="debug"))
        root = restore_root_logger
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        assert any(isinstance(f, RequestIdFilter) for f in root.handlers[0].filters)
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_setup_logging_plain(self, restore_root_logger):
        setup_logging(_settings())
        formatter = restore_root_logger.handlers[0].formatter
        assert not isinstance(formatter, JSONFormatter)
        assert "%(levelname)-8s" in formatter._fmt

    def test_filter_stamps_current_request_id(self):
        record = logging.LogRecord("relay", logging.INFO, __file__, 1, "retrying", None, None)
        token = request_id_var.set("feedc0de")
        try:
            assert RequestIdFilter().filter(record) is True
        finally:
            request_id_var.reset(token)
        assert record.request_id == "feedc0de"

    def test_filter_outside_request_leaves_record_alone(self):
        record = logging.LogRecord("relay", logging.INFO, __file__, 1, "startup", None, None)
        assert RequestIdFilter().filter(record) is True
        assert not hasattr(record, "request_id")

    def test_filter_keeps_explicit_request_id(self):
        record = logging.LogRecord("relay", logging.INFO, __file__, 1, "done", None, None)
        record.request_id = "explicit"
        token = request_id_var.set("from-context")
        try:
            RequestIdFilter().filter(record)
        finally:
            request_id_var.reset(token)
        assert record.request_id == "explicit"
