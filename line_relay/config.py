"""Relay configuration, read once from the environment and injected into the app."""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

# Env var name -> settings field, for the values POST handling cannot run without
REQUIRED_SETTINGS: dict[str, str] = {
    "LINE_CHANNEL_ACCESS_TOKEN": "line_channel_access_token",
    "LINE_CHANNEL_SECRET": "line_channel_secret",
    "LSTEP_WEBHOOK_URL": "lstep_webhook_url",
    "DIFY_LINE_BOT_ENDPOINT": "dify_line_bot_endpoint",
    "DIFY_API_KEY": "dify_api_key",
}

_OPTIONAL_SETTINGS: dict[str, str] = {
    "DIFY_API_BASE_URL": "dify_api_base_url",
    "BLOB_READ_WRITE_TOKEN": "blob_read_write_token",
    "BLOB_API_URL": "blob_api_url",
    "FORWARD_TIMEOUT_SECONDS": "forward_timeout_seconds",
    "DIFY_INCLUDE_SIGNATURE": "dify_include_signature",
    "AUDIT_LOG_PATH": "audit_log_path",
    "AUDIT_LOG_MAX_BYTES": "audit_log_max_bytes",
    "AUDIT_LOG_BACKUP_COUNT": "audit_log_backup_count",
    "LOG_LEVEL": "log_level",
}


class RelaySettings(BaseModel):
    """Everything the relay reads from its environment.

    Required values default to empty so that a half-configured deployment
    still starts: the health check reports the gap and POST answers 500.
    """

    model_config = ConfigDict(frozen=True)

    line_channel_access_token: str = ""
    line_channel_secret: str = ""
    lstep_webhook_url: str = ""
    dify_line_bot_endpoint: str = ""
    dify_api_key: str = ""

    dify_api_base_url: str = "https://api.dify.ai/v1"
    blob_read_write_token: str = ""
    blob_api_url: str = "https://blob.vercel-storage.com"
    forward_timeout_seconds: float = Field(default=10.0, gt=0)
    dify_include_signature: bool = False
    audit_log_path: str | None = None
    audit_log_max_bytes: int = Field(default=10_485_760, gt=0)
    audit_log_backup_count: int = Field(default=5, ge=1)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> RelaySettings:
        env = os.environ if environ is None else environ
        values: dict[str, str] = {}
        for name, field_name in {**REQUIRED_SETTINGS, **_OPTIONAL_SETTINGS}.items():
            value = env.get(name)
            if value:
                values[field_name] = value
        return cls.model_validate(values)

    def missing_required(self) -> list[str]:
        """Env var names of required settings that are unset."""
        return [
            name for name, field_name in REQUIRED_SETTINGS.items()
            if not getattr(self, field_name)
        ]

    @property
    def is_complete(self) -> bool:
        return not self.missing_required()
