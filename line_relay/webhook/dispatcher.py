"""Event classification for a verified envelope.

Every event is routed on its own:

* text wrapped in 【...】 is for L-step only
* any other text also goes to the Dify LINE-bot plugin
* image/audio/video/file messages go through the media pipeline
* everything else is ignored
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from line_relay.webhook.models import InboundEnvelope, InboundEvent

logger = logging.getLogger(__name__)

BRACKET_OPEN = "【"
BRACKET_CLOSE = "】"


class EventRoute(str, Enum):
    FIRST_ONLY = "first_only"
    FORWARD_BOTH = "forward_both"
    MEDIA = "media"
    IGNORED = "ignored"


@dataclass
class DispatchPlan:
    """What a whole envelope needs beyond the unconditional L-step forward."""

    forward_to_second: bool = False
    media_events: list[InboundEvent] = field(default_factory=list)
    routes: list[EventRoute] = field(default_factory=list)


def is_exclusive_to_first_downstream(text: str) -> bool:
    """True if the trimmed text is enclosed in exactly one 【 】 pair.

    A lone bracket can never count as both ends, so the minimum length is 2.
    """
    stripped = text.strip()
    return (
        len(stripped) >= 2
        and stripped[0] == BRACKET_OPEN
        and stripped[-1] == BRACKET_CLOSE
    )


class EventDispatcher:
    """Classifies events and builds the per-envelope plan."""

    def classify(self, event: InboundEvent) -> EventRoute:
        if not event.is_message:
            logger.info("Unhandled event type: %s", event.type or "<missing>")
            return EventRoute.IGNORED

        if event.is_text:
            if is_exclusive_to_first_downstream(event.text or ""):
                logger.info("Bracketed text, L-step only")
                return EventRoute.FIRST_ONLY
            return EventRoute.FORWARD_BOTH

        if event.is_media:
            return EventRoute.MEDIA

        logger.info("Unhandled message type: %s", event.message_type or "<missing>")
        return EventRoute.IGNORED

    def plan(self, envelope: InboundEnvelope) -> DispatchPlan:
        """Build the plan for one envelope.

        The Dify plugin gets the envelope only when some event routes to
        ``FORWARD_BOTH``. Envelopes made up of follow, unfollow or postback
        events alone therefore reach L-step only.
        """
        plan = DispatchPlan()
        for index, event in enumerate(envelope.events):
            try:
                route = self.classify(event)
            except Exception:
                logger.exception("Could not classify event %d", index)
                route = EventRoute.IGNORED

            plan.routes.append(route)
            if route is EventRoute.FORWARD_BOTH:
                plan.forward_to_second = True
            elif route is EventRoute.MEDIA:
                plan.media_events.append(event)
        return plan
