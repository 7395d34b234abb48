"""Raw-envelope forwarding to L-step and the Dify LINE-bot plugin.

The body goes out byte-for-byte as LINE sent it; L-step re-verifies the LINE
signature and would reject anything re-serialized. Each forward has its own
timeout and neither one can cancel the other.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING

import httpx

from line_relay.models import AuditEvent, AuditEventType, RiskLevel
from line_relay.webhook.headers import build_forward_headers
from line_relay.webhook.models import ForwardResult

if TYPE_CHECKING:
    from line_relay.audit.logger import AuditLogger
    from line_relay.webhook.models import InboundEnvelope

logger = logging.getLogger(__name__)

LSTEP = "lstep"
DIFY = "dify"

# How much of a downstream response body ends up in the log
_LOG_BODY_CHARS = {LSTEP: 200, DIFY: 500}


class DualForwarder:
    """Concurrent settle-all forward of one envelope to both destinations."""

    def __init__(
        self,
        lstep_url: str,
        dify_url: str,
        timeout: float = 10.0,
        dify_include_signature: bool = False,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._urls = {LSTEP: lstep_url, DIFY: dify_url}
        self._timeout = timeout
        self._dify_include_signature = dify_include_signature
        self._audit = audit_logger

    async def forward(
        self,
        envelope: InboundEnvelope,
        inbound_headers: Mapping[str, str],
        include_second: bool = True,
    ) -> list[ForwardResult]:
        """Forward to L-step, and to Dify when ``include_second``; never raises."""
        targets = [(LSTEP, True)]
        if include_second:
            targets.append((DIFY, self._dify_include_signature))

        outcomes = await asyncio.gather(
            *(
                self._forward_one(
                    name,
                    envelope.raw_body,
                    build_forward_headers(inbound_headers, envelope.signature, signed),
                )
                for name, signed in targets
            ),
            return_exceptions=True,
        )

        results: list[ForwardResult] = []
        for (name, _), outcome in zip(targets, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("[%s] unexpected forward error: %r", name, outcome)
                outcome = ForwardResult(destination=name, ok=False, error=repr(outcome))
            results.append(outcome)
            self._audit_forward(outcome)
        return results

    async def _forward_one(
        self, name: str, body: bytes, headers: dict[str, str],
    ) -> ForwardResult:
        url = self._urls[name]
        logger.info("[%s] forwarding %d bytes to %s", name, len(body), url)
        logger.debug("[%s] headers: %s", name, headers)

        try:
            async with httpx.AsyncClient() as client:
                resp = await asyncio.wait_for(
                    client.post(url, content=body, headers=headers, timeout=self._timeout),
                    timeout=self._timeout,
                )
        except (TimeoutError, httpx.TimeoutException):
            logger.error(
                "[%s] no response within %.0fs, request aborted", name, self._timeout,
            )
            return ForwardResult(destination=name, ok=False, error="timeout")
        except httpx.HTTPError as exc:
            logger.error("[%s] forward failed: %s", name, exc)
            return ForwardResult(destination=name, ok=False, error=str(exc))

        snippet = resp.text[:_LOG_BODY_CHARS[name]]
        if 200 <= resp.status_code < 300:
            logger.info("[%s] delivered, status %d: %s", name, resp.status_code, snippet)
            return ForwardResult(destination=name, ok=True, status_code=resp.status_code)

        logger.error("[%s] rejected, status %d: %s", name, resp.status_code, snippet)
        return ForwardResult(
            destination=name, ok=False, status_code=resp.status_code,
            error=f"HTTP {resp.status_code}",
        )

    def _audit_forward(self, result: ForwardResult) -> None:
        if not self._audit:
            return
        self._audit.log(AuditEvent(
            event_type=AuditEventType.WEBHOOK_FORWARD,
            destination=result.destination,
            action="forward",
            result="success" if result.ok else "failure",
            risk_level=RiskLevel.INFO if result.ok else RiskLevel.MEDIUM,
            details={"status_code": result.status_code, "error": result.error},
        ))
