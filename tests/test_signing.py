from __future__ import annotations

import hmac
import json
from hashlib import sha256
from uuid import uuid4

import pytest

from webhook_service.services import signing


def test_sign_matches_documented_formula():
    body = b'{"id":"evt","type":"plan.changed"}'
    expected = hmac.new(b"secret", b"1700000000." + body, sha256).hexdigest()
    assert signing.sign("secret", 1700000000, body) == expected


def test_sign_accepts_str_body_and_str_timestamp():
    body = '{"a":1}'
    assert signing.sign("k", "42", body) == signing.sign("k", 42, body.encode("utf-8"))


def test_verify_roundtrip():
    body = signing.encode_body({"type": "plan.changed", "data": {"plan": "pro"}})
    signature = signing.sign("secret", 1700000000, body)
    assert signing.verify("secret", 1700000000, body, signature, now=1700000010) is True


@pytest.mark.parametrize(
    "secret,timestamp,body",
    [
        ("other-secret", 1700000000, b'{"a":1}'),
        ("secret", 1700000001, b'{"a":1}'),
        ("secret", 1700000000, b'{"a":2}'),
        ("secret", 1700000000, b'{"a":1} '),
    ],
)
def test_verify_rejects_any_change(secret, timestamp, body):
    signature = signing.sign("secret", 1700000000, b'{"a":1}')
    assert signing.verify(secret, timestamp, body, signature, now=1700000000) is False


def test_verify_enforces_tolerance():
    body = b"{}"
    signature = signing.sign("k", 1000, body)
    assert signing.verify("k", 1000, body, signature, tolerance_seconds=60, now=1050) is True
    assert signing.verify("k", 1000, body, signature, tolerance_seconds=60, now=1100) is False
    # tolerance_seconds=None checks only the signature
    assert signing.verify("k", 1000, body, signature, tolerance_seconds=None, now=10**9) is True


def test_verify_rejects_stale_timestamp_by_default():
    body = b"{}"
    signature = signing.sign("k", 1000, body)
    assert signing.DEFAULT_TOLERANCE_SECONDS == 300
    assert signing.verify("k", 1000, body, signature, now=1300) is True
    assert signing.verify("k", 1000, body, signature, now=1301) is False
    assert signing.verify("k", 1000, body, signature) is False


def test_is_timestamp_fresh_rejects_garbage():
    assert signing.is_timestamp_fresh("not-a-number", now=0) is False
    assert signing.is_timestamp_fresh("100", tolerance_seconds=5, now=104) is True
    assert signing.is_timestamp_fresh("100", tolerance_seconds=5, now=94) is False


def test_generate_secret_is_64_hex_chars_and_unique():
    first, second = signing.generate_secret(), signing.generate_secret()
    assert len(first) == 64
    int(first, 16)
    assert first != second


def test_encode_body_is_compact_and_keeps_unicode():
    body = signing.encode_body({"name": "Тариф", "n": 1})
    assert body == '{"name":"Тариф","n":1}'.encode("utf-8")
    assert json.loads(body) == {"name": "Тариф", "n": 1}


def test_build_headers():
    event_id, delivery_id = uuid4(), uuid4()
    body = b'{"x":1}'
    headers = signing.build_headers(
        secret="k",
        body=body,
        event_id=event_id,
        event_type="plan.changed",
        delivery_id=delivery_id,
        attempt=3,
        timestamp=1700000000,
        user_agent="webhook-service",
    )
    assert headers["Content-Type"] == "application/json"
    assert headers["User-Agent"] == "webhook-service"
    assert headers[signing.TIMESTAMP_HEADER] == "1700000000"
    assert headers[signing.SIGNATURE_HEADER] == signing.sign("k", 1700000000, body)
    assert headers[signing.EVENT_ID_HEADER] == str(event_id)
    assert headers[signing.EVENT_TYPE_HEADER] == "plan.changed"
    assert headers[signing.DELIVERY_ID_HEADER] == str(delivery_id)
    assert headers[signing.ATTEMPT_HEADER] == "3"


def test_build_headers_without_user_agent():
    headers = signing.build_headers(
        secret="k",
        body=b"{}",
        event_id=uuid4(),
        event_type="boost.expired",
        delivery_id=uuid4(),
        attempt=1,
    )
    assert "User-Agent" not in headers
    assert headers[signing.TIMESTAMP_HEADER].isdigit()
