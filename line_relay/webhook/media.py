"""Media pipeline for image/audio/video/file messages.

Stages, each depending on the previous one:

1. Fetch the content from LINE
2. Classify it (extension, Dify file type)
3. Stage it in temporary blob storage
4. Ask Dify about it
5. Delete the staged object
6. Reply to the user with Dify's answer or a fallback

A failure in fetch or stage ends the run without a reply. Nothing raised
inside a run escapes :meth:`MediaPipeline.process`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from line_relay.models import AuditEvent, AuditEventType, RiskLevel
from line_relay.webhook.blob_store import BlobStoreError, media_key
from line_relay.webhook.dify import DifyError
from line_relay.webhook.line import LineApiError
from line_relay.webhook.models import MediaOutcome, ProcessingResult

if TYPE_CHECKING:
    from line_relay.audit.logger import AuditLogger
    from line_relay.webhook.blob_store import TemporaryBlobStore
    from line_relay.webhook.dify import DifyClient
    from line_relay.webhook.line import LineMessagingClient
    from line_relay.webhook.models import InboundEvent

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "file analysis failed"

_EXTENSIONS: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "audio/m4a": "m4a",
    "audio/x-m4a": "m4a",
    "audio/mp4": "m4a",
    "audio/mpeg": "mp3",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "video/mp4": "mp4",
    "video/quicktime": "mov",
    "application/pdf": "pdf",
    "text/plain": "txt",
    "text/csv": "csv",
    "text/markdown": "md",
    "text/html": "html",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/vnd.ms-excel": "xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "application/vnd.ms-powerpoint": "ppt",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": "pptx",
}

_DIFY_FILE_TYPES: dict[str, frozenset[str]] = {
    "image": frozenset({"jpg", "jpeg", "png", "gif", "webp", "svg"}),
    "audio": frozenset({"mp3", "m4a", "wav", "webm", "amr", "mpga"}),
    "video": frozenset({"mp4", "mov", "mpeg", "webm"}),
    "document": frozenset({
        "txt", "md", "markdown", "pdf", "html", "xlsx", "xls", "doc", "docx",
        "csv", "eml", "msg", "pptx", "ppt", "xml", "epub",
    }),
}


def extension_for_content_type(content_type: str) -> str:
    """File extension for a MIME type; ``bin`` when unknown."""
    return _EXTENSIONS.get(content_type.split(";")[0].strip().lower(), "bin")


def dify_file_type(extension: str) -> str:
    """Dify ``files[].type`` tag for an extension; ``custom`` when unknown."""
    ext = extension.lower()
    for file_type, extensions in _DIFY_FILE_TYPES.items():
        if ext in extensions:
            return file_type
    return "custom"


class MediaPipeline:
    """Runs fetch -> stage -> process -> cleanup -> reply for one event."""

    def __init__(
        self,
        line_client: LineMessagingClient,
        blob_store: TemporaryBlobStore,
        dify_client: DifyClient,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._line = line_client
        self._store = blob_store
        self._dify = dify_client
        self._audit = audit_logger

    async def process(self, event: InboundEvent) -> MediaOutcome:
        message_id = event.message_id or ""
        try:
            outcome = await self._run(event, message_id)
        except Exception as exc:  # one event never takes the request down
            logger.exception("Media pipeline for %s failed unexpectedly", message_id)
            outcome = MediaOutcome(message_id=message_id, stage="error", error=str(exc))
        self._audit_outcome(outcome)
        return outcome

    async def _run(self, event: InboundEvent, message_id: str) -> MediaOutcome:
        if not message_id:
            logger.warning("Media event without a message id, skipping")
            return MediaOutcome(message_id="", stage="fetch", error="missing message id")

        # Stage 1: Fetch
        try:
            blob = await self._line.fetch_content(message_id)
        except LineApiError as exc:
            logger.error("Could not fetch content for %s: %s", message_id, exc)
            return MediaOutcome(message_id=message_id, stage="fetch", error=str(exc))

        # Stage 2: Classify
        extension = extension_for_content_type(blob.content_type)
        file_type = dify_file_type(extension)
        logger.info(
            "Fetched %s: %s, %d bytes -> .%s (%s)",
            message_id, blob.content_type, len(blob.content), extension, file_type,
        )

        # Stage 3: Stage
        try:
            url = await self._store.upload(
                media_key(message_id, extension), blob.content, blob.content_type,
            )
        except BlobStoreError as exc:
            logger.error("Could not stage content for %s: %s", message_id, exc)
            return MediaOutcome(message_id=message_id, stage="stage", error=str(exc))

        # Stage 4 and 5: Process, then always clean up
        try:
            result = await self._dify.ask_about_file(url, file_type, user=event.user_id)
        except DifyError as exc:
            logger.error("Dify could not process %s: %s", message_id, exc)
            result = ProcessingResult(answer=None)
        except Exception:
            logger.exception("Unexpected error processing %s", message_id)
            result = ProcessingResult(answer=None)
        finally:
            await self._cleanup(url)

        # Stage 6: Reply
        outcome = MediaOutcome(
            message_id=message_id, stage="reply", answered=result.answer is not None,
        )
        if not event.reply_token:
            logger.warning("No reply token for %s, not replying", message_id)
            outcome.error = "missing reply token"
            return outcome
        try:
            await self._line.reply_text(event.reply_token, result.answer or FALLBACK_REPLY)
        except LineApiError as exc:
            logger.error("Reply for %s failed: %s", message_id, exc)
            outcome.error = str(exc)
            return outcome

        outcome.stage = "done"
        outcome.replied = True
        return outcome

    async def _cleanup(self, url: str) -> None:
        try:
            await self._store.delete(url)
        except BlobStoreError as exc:
            logger.warning("Cleanup of %s failed: %s", url, exc)
        except Exception:
            logger.exception("Unexpected error cleaning up %s", url)

    def _audit_outcome(self, outcome: MediaOutcome) -> None:
        if not self._audit:
            return
        self._audit.log(AuditEvent(
            event_type=AuditEventType.MEDIA_PIPELINE,
            action="media_pipeline",
            result="success" if outcome.stage == "done" else "failure",
            risk_level=RiskLevel.INFO if outcome.stage == "done" else RiskLevel.LOW,
            details={
                "message_id": outcome.message_id,
                "stage": outcome.stage,
                "answered": outcome.answered,
                "replied": outcome.replied,
                "error": outcome.error,
            },
        ))
