"""Data models for the LINE webhook relay."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

MEDIA_MESSAGE_TYPES = frozenset({"image", "audio", "video", "file"})


class EnvelopeParseError(ValueError):
    """Raised when a verified webhook body is not a LINE webhook envelope."""


@dataclass(frozen=True)
class InboundEvent:
    """One entry of ``events`` in a LINE webhook body."""

    type: str
    message_type: str | None = None
    message_id: str | None = None
    text: str | None = None
    reply_token: str | None = None
    user_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InboundEvent:
        message = data.get("message")
        message = message if isinstance(message, dict) else {}
        source = data.get("source")
        source = source if isinstance(source, dict) else {}
        return cls(
            type=str(data.get("type", "")),
            message_type=message.get("type"),
            message_id=message.get("id"),
            text=message.get("text"),
            reply_token=data.get("replyToken"),
            user_id=source.get("userId"),
            raw=data,
        )

    @property
    def is_message(self) -> bool:
        return self.type == "message"

    @property
    def is_text(self) -> bool:
        return self.is_message and self.message_type == "text"

    @property
    def is_media(self) -> bool:
        return self.is_message and self.message_type in MEDIA_MESSAGE_TYPES


@dataclass(frozen=True)
class InboundEnvelope:
    """A verified webhook delivery.

    ``raw_body`` is the exact bytes LINE sent. Forwards use it as-is; the
    parsed ``destination`` and ``events`` are only for dispatch decisions.
    """

    destination: str
    events: tuple[InboundEvent, ...]
    raw_body: bytes
    signature: str

    @classmethod
    def parse(cls, raw_body: bytes, signature: str) -> InboundEnvelope:
        try:
            payload = json.loads(raw_body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise EnvelopeParseError(f"Webhook body is not JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise EnvelopeParseError("Webhook body must be a JSON object")

        events = payload.get("events")
        if events is None:
            events = []
        if not isinstance(events, list):
            raise EnvelopeParseError("'events' must be a list")
        return cls(
            destination=str(payload.get("destination", "")),
            events=tuple(
                InboundEvent.from_dict(e) for e in events if isinstance(e, dict)
            ),
            raw_body=raw_body,
            signature=signature,
        )


@dataclass(frozen=True)
class MediaBlob:
    """Binary message content downloaded from LINE."""

    content: bytes
    content_type: str


@dataclass(frozen=True)
class ProcessingResult:
    """Dify's answer for a staged file; ``answer`` is None when there was none."""

    answer: str | None = None


@dataclass
class ForwardResult:
    """Outcome of one raw-envelope forward."""

    destination: str
    ok: bool
    status_code: int | None = None
    error: str | None = None


@dataclass
class MediaOutcome:
    """Where a media pipeline run ended."""

    message_id: str
    stage: str  # "fetch" | "stage" | "reply" | "done" | "error"
    replied: bool = False
    answered: bool = False
    error: str | None = None


@dataclass
class RelayResult:
    """Everything one webhook delivery caused downstream."""

    forwards: list[ForwardResult] = field(default_factory=list)
    media: list[MediaOutcome] = field(default_factory=list)
