"""Helpers for signing MEXC Futures API requests."""

from __future__ import annotations

import hashlib
import hmac
import time
from urllib.parse import quote

# characters encodeURIComponent leaves alone, minus the parentheses MEXC wants escaped
_SAFE_CHARS = "-_.!~*'"


def encode_value(value: object) -> str:
    if isinstance(value, bool):
        value = "true" if value else "false"
    return quote(str(value), safe=_SAFE_CHARS)


def build_query_string(params: dict[str, object]) -> str:
    """Build deterministic query string: keys sorted, None values dropped."""
    return "&".join(
        f"{key}={encode_value(params[key])}" for key in sorted(params) if params[key] is not None
    )


def sign_payload(secret: str, payload: str) -> str:
    """Return HMAC SHA256 hex digest for payload."""
    return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


def signature_target(api_key: str, request_time: str, param_string: str) -> str:
    return f"{api_key}{request_time}{param_string}"


def signed_headers(
    api_key: str,
    api_secret: str,
    param_string: str,
    request_time: str | None = None,
) -> dict[str, str]:
    """Headers for a private endpoint; `param_string` is the query string or JSON body."""
    req_time = request_time or str(int(time.time() * 1000))
    signature = sign_payload(api_secret, signature_target(api_key, req_time, param_string))
    return {
        "ApiKey": api_key,
        "Request-Time": req_time,
        "Signature": signature,
        "Content-Type": "application/json",
    }
