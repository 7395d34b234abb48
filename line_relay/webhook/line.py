"""LINE Messaging API client: message content download and reply delivery."""

from __future__ import annotations

import logging

import httpx

from line_relay.webhook.models import MediaBlob

logger = logging.getLogger(__name__)

_LINE_API_BASE = "https://api.line.me/v2/bot"
_LINE_DATA_API_BASE = "https://api-data.line.me/v2/bot"
_DEFAULT_CONTENT_TYPE = "application/octet-stream"


class LineApiError(Exception):
    """Raised when a LINE API call fails or answers non-2xx."""


class LineMessagingClient:
    """Talks back to LINE on behalf of the channel."""

    def __init__(self, access_token: str, timeout: float = 10.0) -> None:
        self._access_token = access_token
        self._timeout = timeout

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._access_token}"}

    async def fetch_content(self, message_id: str) -> MediaBlob:
        """Download the binary content of an image/audio/video/file message."""
        url = f"{_LINE_DATA_API_BASE}/message/{message_id}/content"
        try:
            async with httpx.AsyncClient(verify=True) as client:
                resp = await client.get(
                    url, headers=self._auth_headers(), timeout=self._timeout,
                )
        except httpx.HTTPError as exc:
            raise LineApiError(f"Content download failed for {message_id}: {exc}") from exc

        if resp.status_code >= 300:
            raise LineApiError(
                f"Content download for {message_id} returned {resp.status_code}"
            )
        content_type = resp.headers.get("content-type", _DEFAULT_CONTENT_TYPE)
        return MediaBlob(
            content=resp.content,
            content_type=content_type.split(";")[0].strip().lower(),
        )

    async def reply_text(self, reply_token: str, text: str) -> None:
        """Send a single text reply addressed by a one-time reply token."""
        url = f"{_LINE_API_BASE}/message/reply"
        payload = {
            "replyToken": reply_token,
            "messages": [{"type": "text", "text": text}],
        }
        try:
            async with httpx.AsyncClient(verify=True) as client:
                resp = await client.post(
                    url, json=payload, headers=self._auth_headers(),
                    timeout=self._timeout,
                )
        except httpx.HTTPError as exc:
            raise LineApiError(f"Reply failed: {exc}") from exc

        if resp.status_code >= 300:
            raise LineApiError(f"Reply returned {resp.status_code}: {resp.text[:200]}")
