"""Outbound header construction for raw-envelope forwards.

Both destinations should see a request that looks like it came from LINE
itself: LINE's own ``x-line-*`` headers survive, everything our hosting
platform or a proxy added does not.
"""

from __future__ import annotations

from collections.abc import Mapping

from line_relay.webhook.signature import SIGNATURE_HEADER

USER_AGENT = "LineBotWebhook/1.0"

_LINE_HEADER_PREFIX = "x-line-"
_EXCLUDED_NAME_PARTS = ("forwarded", "host", "proxy")

BLACKLISTED_HEADERS = frozenset({
    "host", "referer", "origin",
    "x-forwarded-for", "x-forwarded-host", "x-forwarded-proto",
    "x-real-ip", "x-vercel-id", "x-vercel-cache",
    "cf-ray", "cf-connecting-ip",
})


def build_forward_headers(
    inbound_headers: Mapping[str, str],
    signature: str,
    include_signature: bool,
) -> dict[str, str]:
    """Derive the header set for one forward from the inbound request headers."""
    headers: dict[str, str] = {
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
        "Accept": "application/json",
        "Cache-Control": "no-cache",
    }
    if include_signature:
        headers["X-Line-Signature"] = signature

    for name, value in inbound_headers.items():
        lower = name.lower()
        if not lower.startswith(_LINE_HEADER_PREFIX) or lower == SIGNATURE_HEADER:
            continue
        if any(part in lower for part in _EXCLUDED_NAME_PARTS):
            continue
        headers[name] = value

    # Last word goes to the blacklist, whatever case a header arrived in
    for name in list(headers):
        if name.lower() in BLACKLISTED_HEADERS:
            del headers[name]

    return headers
