"""Temporary blob storage for media handed to Dify by URL.

Speaks the Vercel Blob HTTP API: ``PUT {base}/{pathname}`` stores a public
object and answers with its URL, ``POST {base}/delete`` removes it again.
"""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

_API_VERSION = "7"
KEY_PREFIX = "line-media"


class BlobStoreError(Exception):
    """Raised when an upload or delete against blob storage fails."""


def media_key(message_id: str, extension: str) -> str:
    """Storage pathname for a LINE message's content."""
    return f"{KEY_PREFIX}/{message_id}.{extension}"


class TemporaryBlobStore:
    """Short-lived public storage for one media object at a time."""

    def __init__(
        self,
        token: str,
        api_url: str = "https://blob.vercel-storage.com",
        timeout: float = 10.0,
    ) -> None:
        self._token = token
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "x-api-version": _API_VERSION,
        }

    async def upload(self, key: str, content: bytes, content_type: str) -> str:
        """Store ``content`` under ``key`` and return its public URL."""
        if not self._token:
            raise BlobStoreError("Blob storage token is not configured")

        headers = {
            **self._headers(),
            "x-content-type": content_type,
            # Keys are unique per message id; keep them predictable
            "x-add-random-suffix": "0",
        }
        try:
            async with httpx.AsyncClient(verify=True) as client:
                resp = await client.put(
                    f"{self._api_url}/{key}",
                    content=content,
                    headers=headers,
                    timeout=self._timeout,
                )
        except httpx.HTTPError as exc:
            raise BlobStoreError(f"Upload of {key} failed: {exc}") from exc

        if resp.status_code >= 300:
            raise BlobStoreError(f"Upload of {key} returned {resp.status_code}")
        try:
            url = resp.json()["url"]
        except (ValueError, KeyError, TypeError) as exc:
            raise BlobStoreError(f"Upload of {key} returned no URL") from exc

        logger.info("Staged %s (%d bytes) at %s", key, len(content), url)
        return url

    async def delete(self, url: str) -> None:
        """Remove a previously uploaded object."""
        try:
            async with httpx.AsyncClient(verify=True) as client:
                resp = await client.post(
                    f"{self._api_url}/delete",
                    json={"urls": [url]},
                    headers=self._headers(),
                    timeout=self._timeout,
                )
        except httpx.HTTPError as exc:
            raise BlobStoreError(f"Delete of {url} failed: {exc}") from exc

        if resp.status_code >= 300:
            raise BlobStoreError(f"Delete of {url} returned {resp.status_code}")
