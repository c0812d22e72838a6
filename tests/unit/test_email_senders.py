"""
Unit tests for the email sender adapters.

Tests verify each sender implements the EmailSender protocol:
- ConsoleEmailSender logs codes in the expected format
- DisabledEmailSender always fails with DeliveryError
- ResendEmailSender posts to the Resend API (httpx.MockTransport)
"""

import json
import logging

import httpx
import pytest

from src.adapters.smtp.console import ConsoleEmailSender
from src.adapters.smtp.disabled import DisabledEmailSender
from src.adapters.smtp.resend import RESEND_API_URL, ResendEmailSender
from src.domain.exceptions import DeliveryError


class TestConsoleEmailSender:
    def test_no_explicit_inheritance(self) -> None:
        """ConsoleEmailSender uses structural subtyping, not inheritance."""
        assert ConsoleEmailSender.__bases__ == (object,)

    def test_verification_code_format(self, caplog: pytest.LogCaptureFixture) -> None:
        """Log format: [VERIFICATION] Email: ... Code: ..."""
        sender = ConsoleEmailSender()

        with caplog.at_level(logging.INFO):
            sender.send_verification_code("user@example.com", "567890")

        assert len(caplog.records) == 1
        assert caplog.records[0].levelno == logging.INFO
        assert "[VERIFICATION] Email: user@example.com Code: 567890" in caplog.text

    def test_welcome_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO):
            ConsoleEmailSender().send_welcome("user@example.com", "A B")

        assert "[WELCOME] Email: user@example.com Name: A B" in caplog.text

    def test_configured_sender_includes_expiry_and_login_link(self, caplog: pytest.LogCaptureFixture) -> None:
        sender = ConsoleEmailSender(app_url="https://campus.example/", code_ttl_minutes=10)

        with caplog.at_level(logging.INFO):
            sender.send_verification_code("user@example.com", "567890")
            sender.send_welcome("user@example.com", "A B")

        assert "[VERIFICATION] Email: user@example.com Code: 567890 (valid 10 min)" in caplog.text
        assert "Login: https://campus.example/login" in caplog.text


class TestDisabledEmailSender:
    def test_verification_code_fails(self) -> None:
        with pytest.raises(DeliveryError, match="not configured"):
            DisabledEmailSender().send_verification_code("user@example.com", "123456")

    def test_welcome_fails(self) -> None:
        with pytest.raises(DeliveryError):
            DisabledEmailSender().send_welcome("user@example.com", "A B")


def _resend(handler) -> ResendEmailSender:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return ResendEmailSender(
        api_key="re_test",
        sender="Campus <onboarding@resend.dev>",
        app_url="http://localhost:5173",
        code_ttl_minutes=10,
        client=client,
    )


class TestResendEmailSender:
    def test_posts_verification_code(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"id": "email_1"})

        _resend(handler).send_verification_code("user@example.com", "482913")

        assert len(requests) == 1
        request = requests[0]
        assert str(request.url) == RESEND_API_URL
        assert request.headers["Authorization"] == "Bearer re_test"
        body = json.loads(request.content)
        assert body["to"] == ["user@example.com"]
        assert body["from"] == "Campus <onboarding@resend.dev>"
        assert "482913" in body["subject"]
        assert "10 minutes" in body["text"]

    def test_welcome_mentions_app_url(self) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"id": "email_2"})

        _resend(handler).send_welcome("user@example.com", "A B")

        assert "A B" in bodies[0]["subject"]
        assert "http://localhost:5173" in bodies[0]["text"]

    def test_api_error_raises_delivery_error(self) -> None:
        sender = _resend(lambda request: httpx.Response(422, json={"message": "invalid"}))

        with pytest.raises(DeliveryError):
            sender.send_verification_code("user@example.com", "482913")

    def test_transport_error_raises_delivery_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(DeliveryError):
            _resend(handler).send_welcome("user@example.com", "A B")
