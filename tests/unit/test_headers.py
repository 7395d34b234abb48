"""Tests for outbound header sanitization."""

from __future__ import annotations

from line_relay.webhook.headers import (
    BLACKLISTED_HEADERS,
    USER_AGENT,
    build_forward_headers,
)


def _lower_names(headers: dict[str, str]) -> set[str]:
    return {name.lower() for name in headers}


class TestDefaults:
    def test_seeds_fixed_defaults(self) -> None:
        headers = build_forward_headers({}, "sig", include_signature=False)
        assert headers == {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
            "Accept": "application/json",
            "Cache-Control": "no-cache",
        }

    def test_inbound_user_agent_is_not_copied(self) -> None:
        headers = build_forward_headers(
            {"user-agent": "curl/8.0"}, "sig", include_signature=False,
        )
        assert headers["User-Agent"] == USER_AGENT
        assert "user-agent" not in headers


class TestSignature:
    def test_signature_included_when_requested(self) -> None:
        headers = build_forward_headers({}, "abc=", include_signature=True)
        assert headers["X-Line-Signature"] == "abc="

    def test_signature_omitted_when_not_requested(self) -> None:
        headers = build_forward_headers(
            {"x-line-signature": "abc="}, "abc=", include_signature=False,
        )
        assert "x-line-signature" not in _lower_names(headers)

    def test_inbound_signature_never_copied_verbatim(self) -> None:
        headers = build_forward_headers(
            {"X-LINE-SIGNATURE": "forged"}, "real", include_signature=True,
        )
        assert headers["X-Line-Signature"] == "real"
        assert "X-LINE-SIGNATURE" not in headers


class TestLineHeaderPassThrough:
    def test_copies_line_prefixed_headers(self) -> None:
        headers = build_forward_headers(
            {"x-line-request-id": "req-1", "X-Line-Retry-Key": "rk"},
            "sig", include_signature=False,
        )
        assert headers["x-line-request-id"] == "req-1"
        assert headers["X-Line-Retry-Key"] == "rk"

    def test_skips_non_line_headers(self) -> None:
        headers = build_forward_headers(
            {"x-custom": "1", "authorization": "Bearer t", "content-length": "10"},
            "sig", include_signature=False,
        )
        assert _lower_names(headers).isdisjoint({"x-custom", "authorization", "content-length"})

    def test_skips_line_headers_mentioning_proxy_metadata(self) -> None:
        headers = build_forward_headers(
            {
                "x-line-forwarded-for": "1.2.3.4",
                "x-line-host": "evil",
                "X-Line-Proxy-Id": "p",
            },
            "sig", include_signature=False,
        )
        assert not any(name.lower().startswith("x-line-") for name in headers)


class TestBlacklist:
    def test_blacklisted_headers_never_emitted(self) -> None:
        inbound = {name: "v" for name in BLACKLISTED_HEADERS}
        inbound.update({name.upper(): "v" for name in BLACKLISTED_HEADERS})
        inbound.update({name.title(): "v" for name in BLACKLISTED_HEADERS})
        for include in (True, False):
            headers = build_forward_headers(inbound, "sig", include_signature=include)
            assert _lower_names(headers).isdisjoint(BLACKLISTED_HEADERS)

    def test_mixed_case_vercel_and_cloudflare_headers_dropped(self) -> None:
        inbound = {
            "X-Vercel-Id": "iad1::abc",
            "cF-rAy": "123",
            "X-Real-IP": "10.0.0.1",
            "x-line-request-id": "keep",
        }
        headers = build_forward_headers(inbound, "sig", include_signature=True)
        assert _lower_names(headers).isdisjoint(BLACKLISTED_HEADERS)
        assert headers["x-line-request-id"] == "keep"
