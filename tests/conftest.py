"""Shared test fixtures for line-relay."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from line_relay.audit.logger import AuditLogger
from line_relay.config import RelaySettings
from line_relay.webhook.signature import create_signature

CHANNEL_SECRET = "test_channel_secret"
LSTEP_URL = "https://lstep.example.com/webhook"
DIFY_PLUGIN_URL = "https://dify.example.com/e/line-bot"


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


@pytest.fixture
def settings() -> RelaySettings:
    return make_settings()


# --- Factory functions for test data ---


def make_settings(**kwargs: Any) -> RelaySettings:
    """Factory for a fully configured RelaySettings."""
    defaults: dict[str, Any] = {
        "line_channel_access_token": "test_access_token",
        "line_channel_secret": CHANNEL_SECRET,
        "lstep_webhook_url": LSTEP_URL,
        "dify_line_bot_endpoint": DIFY_PLUGIN_URL,
        "dify_api_key": "test_dify_key",
        "blob_read_write_token": "test_blob_token",
    }
    defaults.update(kwargs)
    return RelaySettings(**defaults)


def make_text_event(text: str = "hello", **kwargs: Any) -> dict[str, Any]:
    """Factory for a LINE text message event."""
    event: dict[str, Any] = {
        "type": "message",
        "replyToken": "reply-token-1",
        "source": {"type": "user", "userId": "U123"},
        "timestamp": 1700000000000,
        "message": {"id": "100001", "type": "text", "text": text},
    }
    event.update(kwargs)
    return event


def make_media_event(
    message_type: str = "image", message_id: str = "200001", **kwargs: Any,
) -> dict[str, Any]:
    """Factory for a LINE image/audio/video/file message event."""
    event: dict[str, Any] = {
        "type": "message",
        "replyToken": f"reply-{message_id}",
        "source": {"type": "user", "userId": "U123"},
        "timestamp": 1700000000000,
        "message": {
            "id": message_id,
            "type": message_type,
            "contentProvider": {"type": "line"},
        },
    }
    event.update(kwargs)
    return event


def make_body(*events: dict[str, Any], destination: str = "Ubot") -> bytes:
    """Serialize a webhook body the way LINE does (compact, non-ASCII kept)."""
    payload = {"destination": destination, "events": list(events)}
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode()


def sign(body: bytes, secret: str = CHANNEL_SECRET) -> str:
    return create_signature(body, secret)


def make_mock_http_client() -> AsyncMock:
    """An AsyncMock usable as ``async with httpx.AsyncClient() as client``."""
    client = AsyncMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


def make_response(
    status_code: int = 200,
    json_data: Any = None,
    text: str = "",
    content: bytes = b"",
    headers: dict[str, str] | None = None,
) -> MagicMock:
    """A stand-in for httpx.Response with just the attributes the relay reads."""
    resp = MagicMock(status_code=status_code)
    resp.text = text
    resp.content = content
    resp.headers = headers or {}
    if json_data is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = json_data
    return resp
