"""Webhook relay pipeline.

Runs everything one verified LINE delivery causes, concurrently:

1. Dispatch (classify events, apply the bracket filter)
2. Forward the raw envelope to L-step, and to Dify unless filtered out
3. Media pipeline for each image/audio/video/file message

All of it is awaited before the handler answers LINE. No failure in here is
allowed to change that answer.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING

from line_relay.webhook.dispatcher import EventDispatcher
from line_relay.webhook.models import MediaOutcome, RelayResult

if TYPE_CHECKING:
    from line_relay.webhook.forwarder import DualForwarder
    from line_relay.webhook.media import MediaPipeline
    from line_relay.webhook.models import InboundEnvelope

logger = logging.getLogger(__name__)


class WebhookRelayPipeline:
    """Orchestrates dispatch, dual forward and media handling for one envelope."""

    def __init__(
        self,
        forwarder: DualForwarder,
        media_pipeline: MediaPipeline,
        dispatcher: EventDispatcher | None = None,
    ) -> None:
        self._forwarder = forwarder
        self._media = media_pipeline
        self._dispatcher = dispatcher or EventDispatcher()

    async def relay(
        self, envelope: InboundEnvelope, inbound_headers: Mapping[str, str],
    ) -> RelayResult:
        plan = self._dispatcher.plan(envelope)
        logger.info(
            "Relaying %d event(s): dify=%s, media=%d",
            len(envelope.events), plan.forward_to_second, len(plan.media_events),
        )

        outcomes = await asyncio.gather(
            self._forwarder.forward(
                envelope, inbound_headers, include_second=plan.forward_to_second,
            ),
            *(self._media.process(event) for event in plan.media_events),
            return_exceptions=True,
        )

        result = RelayResult()
        forwards, *media = outcomes
        if isinstance(forwards, BaseException):
            logger.error("Forwarding raised: %r", forwards)
        else:
            result.forwards = list(forwards)
        for event, outcome in zip(plan.media_events, media):
            if isinstance(outcome, BaseException):
                logger.error("Media pipeline raised: %r", outcome)
                outcome = MediaOutcome(
                    message_id=event.message_id or "", stage="error", error=repr(outcome),
                )
            result.media.append(outcome)

        logger.info("Relay finished: %s", ", ".join(
            f"{f.destination}={'ok' if f.ok else f.error}" for f in result.forwards
        ) or "no forwards")
        return result
