"""Dify chat API client used to analyse staged media files."""

from __future__ import annotations

import logging

import httpx

from line_relay.webhook.models import ProcessingResult

logger = logging.getLogger(__name__)

# Dify requires a non-empty query even when the file is the whole question
PLACEHOLDER_QUERY = "Please analyze the attached file."
DEFAULT_USER = "line-user"


class DifyError(Exception):
    """Raised when the Dify chat API cannot be reached or answers non-2xx."""


class DifyClient:
    """Blocking-mode client for ``POST /chat-messages``."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.dify.ai/v1",
        timeout: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def ask_about_file(
        self,
        file_url: str,
        file_type: str,
        user: str | None = None,
        query: str = PLACEHOLDER_QUERY,
    ) -> ProcessingResult:
        """Submit a remote file and return Dify's answer.

        A 2xx response without a usable ``answer`` is a valid "no answer"
        result, not an error.
        """
        payload = {
            "inputs": {},
            "query": query or PLACEHOLDER_QUERY,
            "response_mode": "blocking",
            "user": user or DEFAULT_USER,
            "files": [{
                "type": file_type,
                "transfer_method": "remote_url",
                "url": file_url,
            }],
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(verify=True) as client:
                resp = await client.post(
                    f"{self._base_url}/chat-messages",
                    json=payload,
                    headers=headers,
                    timeout=self._timeout,
                )
        except httpx.HTTPError as exc:
            raise DifyError(f"Dify request failed: {exc}") from exc

        if resp.status_code >= 300:
            raise DifyError(f"Dify returned {resp.status_code}: {resp.text[:500]}")

        try:
            answer = resp.json().get("answer")
        except (ValueError, AttributeError):
            answer = None
        if not isinstance(answer, str) or not answer.strip():
            logger.warning("Dify answered %s without an answer", resp.status_code)
            return ProcessingResult(answer=None)
        return ProcessingResult(answer=answer)
