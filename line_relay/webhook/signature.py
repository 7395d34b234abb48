"""LINE webhook signature verification.

LINE signs the request body with HMAC-SHA256 keyed by the channel secret and
sends the base64 digest in ``x-line-signature``. The digest is taken over the
body bytes exactly as received, so callers must pass the raw body, never a
re-serialized copy.
"""

from __future__ import annotations

import base64
import hashlib
import hmac

SIGNATURE_HEADER = "x-line-signature"


def _as_bytes(value: bytes | str) -> bytes:
    return value.encode() if isinstance(value, str) else value


def create_signature(body: bytes | str, secret: str) -> str:
    """Return the base64 HMAC-SHA256 of ``body`` under ``secret``."""
    digest = hmac.new(secret.encode(), _as_bytes(body), hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def verify_signature(signature: str, body: bytes | str, secret: str) -> bool:
    """Return True if ``signature`` is LINE's signature for ``body``.

    Constant-time comparison via hmac.compare_digest. Both sides are
    compared as bytes so a non-ASCII header value is a mismatch, not an error.
    """
    if not signature:
        return False
    expected = create_signature(body, secret)
    return hmac.compare_digest(signature.encode(), expected.encode())
