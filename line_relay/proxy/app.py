"""FastAPI application exposing the LINE webhook relay under ``/api``."""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import UTC, datetime
from typing import Any

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from line_relay.audit.logger import AuditLogger
from line_relay.config import REQUIRED_SETTINGS, RelaySettings
from line_relay.models import AuditEvent, AuditEventType, RiskLevel
from line_relay.webhook.blob_store import TemporaryBlobStore
from line_relay.webhook.dify import DifyClient
from line_relay.webhook.forwarder import DIFY, LSTEP, DualForwarder
from line_relay.webhook.line import LineMessagingClient
from line_relay.webhook.media import MediaPipeline
from line_relay.webhook.models import EnvelopeParseError, InboundEnvelope
from line_relay.webhook.relay import WebhookRelayPipeline
from line_relay.webhook.signature import SIGNATURE_HEADER, verify_signature

logger = logging.getLogger(__name__)

_PROBE_TIMEOUT_SECONDS = 5.0
_DEBUG_PREVIEW_CHARS = 20
_SECRET_PREVIEW_CHARS = 4
_SECRET_SUFFIXES = ("_TOKEN", "_SECRET", "_KEY")
_DEBUG_KEY_MARKERS = ("LINE", "DIFY", "LSTEP", "BLOB")


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    settings = RelaySettings.from_env()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    missing = settings.missing_required()
    if missing:
        logging.warning("Required settings not configured: %s", ", ".join(missing))
    return create_app(settings, audit_logger=AuditLogger.from_settings(settings))


def build_relay_pipeline(
    settings: RelaySettings,
    audit_logger: AuditLogger | None = None,
) -> WebhookRelayPipeline:
    """Wire the relay components from settings."""
    timeout = settings.forward_timeout_seconds
    forwarder = DualForwarder(
        lstep_url=settings.lstep_webhook_url,
        dify_url=settings.dify_line_bot_endpoint,
        timeout=timeout,
        dify_include_signature=settings.dify_include_signature,
        audit_logger=audit_logger,
    )
    media = MediaPipeline(
        line_client=LineMessagingClient(settings.line_channel_access_token, timeout),
        blob_store=TemporaryBlobStore(
            settings.blob_read_write_token, settings.blob_api_url, timeout,
        ),
        dify_client=DifyClient(settings.dify_api_key, settings.dify_api_base_url, timeout),
        audit_logger=audit_logger,
    )
    return WebhookRelayPipeline(forwarder=forwarder, media_pipeline=media)


def create_app(
    settings: RelaySettings,
    relay_pipeline: WebhookRelayPipeline | None = None,
    audit_logger: AuditLogger | None = None,
) -> FastAPI:
    """Create the relay app; ``relay_pipeline`` overrides the settings-built one."""
    app = FastAPI(docs_url=None, redoc_url=None)
    pipeline = relay_pipeline or build_relay_pipeline(settings, audit_logger)

    def _audit(event_type: AuditEventType, request: Request, **kwargs: Any) -> None:
        if audit_logger:
            audit_logger.log(AuditEvent(
                event_type=event_type,
                source_ip=request.client.host if request.client else None,
                **kwargs,
            ))

    @app.get("/api")
    async def health() -> dict[str, Any]:
        complete = settings.is_complete
        return {
            "status": 200 if complete else 500,
            "message": (
                "Proxy server is running" if complete
                else "Environment variables are not properly configured"
            ),
            "timestamp": datetime.now(UTC).isoformat(),
        }

    @app.get("/api/debug")
    async def debug() -> dict[str, Any]:
        return {
            "env_status": [
                _describe_setting(name, getattr(settings, field_name))
                for name, field_name in REQUIRED_SETTINGS.items()
            ],
            "missing": settings.missing_required(),
            "test_endpoints": {
                LSTEP: "CONFIGURED" if settings.lstep_webhook_url else "NOT_SET",
                DIFY: "CONFIGURED" if settings.dify_line_bot_endpoint else "NOT_SET",
            },
            # names only, never values
            "all_keys": sorted(
                key for key in os.environ
                if any(marker in key for marker in _DEBUG_KEY_MARKERS)
            ),
            "vercel_env": os.environ.get("VERCEL_ENV"),
            "total_env_vars": len(os.environ),
        }

    @app.get("/api/test-endpoints")
    async def test_endpoints() -> dict[str, Any]:
        lstep, dify = await asyncio.gather(
            _probe(settings.lstep_webhook_url),
            _probe(settings.dify_line_bot_endpoint),
        )
        return {
            "message": "Endpoint connectivity test results",
            "results": {LSTEP: lstep, DIFY: dify},
            "timestamp": datetime.now(UTC).isoformat(),
        }

    @app.post("/api")
    async def webhook(request: Request) -> JSONResponse:
        missing = settings.missing_required()
        if missing:
            logger.error("Rejecting webhook, settings missing: %s", ", ".join(missing))
            _audit(
                AuditEventType.WEBHOOK_CONFIG_ERROR, request,
                action="webhook", result="failure", risk_level=RiskLevel.HIGH,
                details={"missing": missing},
            )
            return JSONResponse(
                {"status": 500, "message": "Server configuration error"},
                status_code=500,
            )

        raw_body = await request.body()
        signature = request.headers.get(SIGNATURE_HEADER, "")
        if not verify_signature(signature, raw_body, settings.line_channel_secret):
            logger.error("LINE signature verification failed")
            _audit(
                AuditEventType.WEBHOOK_AUTH_FAILURE, request,
                action="verify_signature", result="failure", risk_level=RiskLevel.HIGH,
                details={"signature_present": bool(signature)},
            )
            return JSONResponse(
                {"status": 401, "message": "Invalid signature"},
                status_code=401,
            )

        try:
            envelope = InboundEnvelope.parse(raw_body, signature)
        except EnvelopeParseError as exc:
            # Signed by LINE yet unreadable; answering non-2xx would only invite retries
            logger.error("Verified webhook body could not be parsed: %s", exc)
            return JSONResponse({"status": 200})

        logger.info(
            "Webhook received: %d event(s), destination %s",
            len(envelope.events), envelope.destination,
        )
        await pipeline.relay(envelope, request.headers)
        return JSONResponse({"status": 200})

    return app


def _describe_setting(name: str, value: str) -> dict[str, object]:
    if not value:
        preview = "NOT_SET"
    elif name.endswith(_SECRET_SUFFIXES):
        preview = f"{value[:_SECRET_PREVIEW_CHARS]}..."
    else:
        preview = f"{value[:_DEBUG_PREVIEW_CHARS]}..."
    return {
        "key": name,
        "exists": bool(value),
        "value": preview,
        "full_length": len(value),
    }


async def _probe(url: str) -> dict[str, str | None]:
    """HEAD a downstream URL and report whether it answered."""
    if not url:
        return {"status": "url_not_set", "error": None}
    try:
        async with httpx.AsyncClient() as client:
            resp = await client.head(url, timeout=_PROBE_TIMEOUT_SECONDS)
    except httpx.TimeoutException:
        return {"status": "unreachable", "error": "timeout"}
    except httpx.HTTPError as exc:
        return {"status": "unreachable", "error": str(exc)}
    return {"status": f"reachable ({resp.status_code})", "error": None}
