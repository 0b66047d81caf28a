"""Tests for signed webhook delivery."""

import json
from unittest.mock import Mock

import pytest
import requests

from infrastructure.webhook import (
    WebhookNotifier, SIGNATURE_HEADER, serialize_payload, sign, verify_signature
)
from domain.exceptions import WebhookDeliveryError


def response(status_code, reason="OK"):
    resp = Mock()
    resp.status_code = status_code
    resp.reason = reason
    return resp


@pytest.fixture
def session():
    return Mock(spec=requests.Session)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def notifier(session, sleeps):
    return WebhookNotifier(session=session, sleep=sleeps.append)


class TestSignature:
    """Test HMAC signing."""

    def test_sign_and_verify(self):
        body = serialize_payload({"assembly_id": "a", "ok": "ASSEMBLY_COMPLETED"})

        header = sign(body, "secret")

        assert header.startswith("sha256=")
        assert verify_signature(body, header, "secret")
        assert not verify_signature(body, header, "other")
        assert not verify_signature(body + b" ", header, "secret")
        assert not verify_signature(body, None, "secret")

    def test_serialization_is_compact(self):
        assert serialize_payload({"a": 1, "b": [1, 2]}) == b'{"a":1,"b":[1,2]}'


class TestWebhookNotifier:
    """Test delivery and retry behaviour."""

    def test_delivers_signed_body(self, notifier, session, sleeps):
        """Test a first-attempt success with signature header."""
        session.post.return_value = response(200)
        payload = {"assembly_id": "asm-1", "ok": "ASSEMBLY_COMPLETED"}

        attempts = notifier.deliver("https://hooks.example.com/x", payload, secret="s3cret")

        assert attempts == 1
        assert sleeps == []
        _, kwargs = session.post.call_args
        assert json.loads(kwargs["data"]) == payload
        assert kwargs["headers"]["Content-Type"] == "application/json"
        assert verify_signature(kwargs["data"], kwargs["headers"][SIGNATURE_HEADER], "s3cret")
        assert kwargs["timeout"] == 30.0

    def test_no_signature_without_secret(self, notifier, session):
        session.post.return_value = response(204)

        notifier.deliver("https://hooks.example.com/x", {"a": 1})

        _, kwargs = session.post.call_args
        assert SIGNATURE_HEADER not in kwargs["headers"]

    def test_retries_server_errors(self, notifier, session, sleeps):
        """Test 500, 500, 200: three attempts with 1s and 2s waits."""
        session.post.side_effect = [response(500, "Error"), response(500, "Error"), response(200)]

        attempts = notifier.deliver("https://hooks.example.com/x", {"a": 1}, max_retries=3)

        assert attempts == 3
        assert session.post.call_count == 3
        assert sleeps == [1.0, 2.0]

    @pytest.mark.parametrize("code", [400, 404, 429])
    def test_client_error_is_not_retried(self, notifier, session, sleeps, code):
        """Test that 4xx responses, rate limiting included, fail after a single attempt."""
        session.post.return_value = response(code, "Client Error")

        with pytest.raises(WebhookDeliveryError) as exc_info:
            notifier.deliver("https://hooks.example.com/x", {"a": 1}, max_retries=3)

        assert session.post.call_count == 1
        assert sleeps == []
        assert exc_info.value.status_code == code
        assert exc_info.value.attempts == 1

    def test_exhausted_retries(self, notifier, session, sleeps):
        session.post.return_value = response(503, "Unavailable")

        with pytest.raises(WebhookDeliveryError) as exc_info:
            notifier.deliver("https://hooks.example.com/x", {"a": 1}, max_retries=2)

        assert session.post.call_count == 3
        assert sleeps == [1.0, 2.0]
        assert exc_info.value.attempts == 3

    def test_transport_errors_are_retried(self, notifier, session, sleeps):
        session.post.side_effect = [requests.ConnectionError("reset"), response(200)]

        assert notifier.deliver("https://hooks.example.com/x", {"a": 1}) == 2
        assert sleeps == [1.0]
