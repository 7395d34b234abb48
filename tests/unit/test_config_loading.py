"""Tests for settings loading from the environment."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from line_relay.config import REQUIRED_SETTINGS, RelaySettings

FULL_ENV = {
    "LINE_CHANNEL_ACCESS_TOKEN": "access",
    "LINE_CHANNEL_SECRET": "secret",
    "LSTEP_WEBHOOK_URL": "https://lstep.example.com/hook",
    "DIFY_LINE_BOT_ENDPOINT": "https://dify.example.com/e/abc",
    "DIFY_API_KEY": "app-key",
}


def test_reads_required_values() -> None:
    settings = RelaySettings.from_env(FULL_ENV)
    assert settings.line_channel_secret == "secret"
    assert settings.lstep_webhook_url == "https://lstep.example.com/hook"
    assert settings.is_complete
    assert settings.missing_required() == []


def test_defaults() -> None:
    settings = RelaySettings.from_env(FULL_ENV)
    assert settings.forward_timeout_seconds == 10.0
    assert settings.dify_include_signature is False
    assert settings.dify_api_base_url == "https://api.dify.ai/v1"
    assert settings.audit_log_path is None


def test_optional_values_are_coerced() -> None:
    settings = RelaySettings.from_env({
        **FULL_ENV,
        "FORWARD_TIMEOUT_SECONDS": "2.5",
        "DIFY_INCLUDE_SIGNATURE": "true",
        "AUDIT_LOG_MAX_BYTES": "1024",
    })
    assert settings.forward_timeout_seconds == 2.5
    assert settings.dify_include_signature is True
    assert settings.audit_log_max_bytes == 1024


def test_reports_every_missing_required_value() -> None:
    settings = RelaySettings.from_env({})
    assert settings.missing_required() == list(REQUIRED_SETTINGS)
    assert not settings.is_complete


def test_empty_string_counts_as_missing() -> None:
    settings = RelaySettings.from_env({**FULL_ENV, "DIFY_API_KEY": ""})
    assert settings.missing_required() == ["DIFY_API_KEY"]


def test_rejects_non_positive_timeout() -> None:
    with pytest.raises(ValidationError):
        RelaySettings.from_env({**FULL_ENV, "FORWARD_TIMEOUT_SECONDS": "0"})


def test_settings_are_immutable() -> None:
    settings = RelaySettings.from_env(FULL_ENV)
    with pytest.raises(ValidationError):
        settings.line_channel_secret = "other"  # type: ignore[misc]
