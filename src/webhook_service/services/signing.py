"""Webhook payload signing.

Receiver contract
-----------------
Every delivery is a ``POST`` with a JSON body and these headers:

``X-Webhook-Timestamp``
    Unix time (integer seconds) at which the request was signed.
``X-Webhook-Signature``
    ``hex(HMAC_SHA256(secret, f"{timestamp}." + raw_body))`` where ``secret``
    is the endpoint secret (UTF-8), ``timestamp`` is the header value verbatim
    and ``raw_body`` is the request body bytes exactly as received.
``X-Webhook-Id``
    Event id, shared by every delivery of the same event and stable across
    retries. Use it to de-duplicate: delivery is at-least-once.
``X-Webhook-Event``
    Event type, e.g. ``plan.changed``.

To verify, recompute the signature over the raw body (do not re-serialize the
parsed JSON), compare in constant time, and reject timestamps further than
your skew window (we recommend 300 seconds) from your clock. Rotating the
secret invalidates the old one immediately.
"""
from __future__ import annotations

import hmac
import json
import secrets
import time
from hashlib import sha256
from typing import Any
from uuid import UUID

SIGNATURE_HEADER = "X-Webhook-Signature"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"
EVENT_ID_HEADER = "X-Webhook-Id"
EVENT_TYPE_HEADER = "X-Webhook-Event"
DELIVERY_ID_HEADER = "X-Webhook-Delivery-Id"
ATTEMPT_HEADER = "X-Webhook-Attempt"

DEFAULT_TOLERANCE_SECONDS = 300


def generate_secret() -> str:
    """64 hex characters (32 random bytes)."""
    return secrets.token_hex(32)


def encode_body(payload: dict[str, Any]) -> bytes:
    """Serialize a payload to the exact bytes that are signed and sent."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _as_bytes(body: bytes | str) -> bytes:
    return body.encode("utf-8") if isinstance(body, str) else body


def sign(secret: str, timestamp: int | str, body: bytes | str) -> str:
    message = f"{timestamp}.".encode("utf-8") + _as_bytes(body)
    return hmac.new(secret.encode("utf-8"), message, sha256).hexdigest()


def is_timestamp_fresh(
    timestamp: int | str, *, tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS, now: float | None = None
) -> bool:
    try:
        ts = int(timestamp)
    except (TypeError, ValueError):
        return False
    current = time.time() if now is None else now
    return abs(current - ts) <= tolerance_seconds


def verify(
    secret: str,
    timestamp: int | str,
    body: bytes | str,
    signature: str,
    *,
    tolerance_seconds: int | None = DEFAULT_TOLERANCE_SECONDS,
    now: float | None = None,
) -> bool:
    """Check *signature* and that *timestamp* is within *tolerance_seconds* of *now*.

    Pass ``tolerance_seconds=None`` to check the signature alone.
    """
    expected = sign(secret, timestamp, body)
    if not hmac.compare_digest(expected, signature):
        return False
    if tolerance_seconds is not None:
        return is_timestamp_fresh(timestamp, tolerance_seconds=tolerance_seconds, now=now)
    return True


def build_headers(
    *,
    secret: str,
    body: bytes,
    event_id: UUID,
    event_type: str,
    delivery_id: UUID,
    attempt: int,
    timestamp: int | None = None,
    user_agent: str | None = None,
) -> dict[str, str]:
    ts = int(time.time()) if timestamp is None else timestamp
    headers = {
        "Content-Type": "application/json",
        SIGNATURE_HEADER: sign(secret, ts, body),
        TIMESTAMP_HEADER: str(ts),
        EVENT_ID_HEADER: str(event_id),
        EVENT_TYPE_HEADER: event_type,
        DELIVERY_ID_HEADER: str(delivery_id),
        ATTEMPT_HEADER: str(attempt),
    }
    if user_agent:
        headers["User-Agent"] = user_agent
    return headers
