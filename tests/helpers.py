"""Test helpers shared across unit, integration and adversarial tests."""

from dataclasses import dataclass, field

from fastapi.testclient import TestClient

from src.domain import AuthService
from src.domain.models import AuthResult

ACCESS_SECRET = "test-access-secret-0123456789abcdef"
REFRESH_SECRET = "test-refresh-secret-0123456789abcdef"
PASSWORD = "Abcd1234"


@dataclass
class RecordingEmailSender:
    """EmailSender that keeps every message instead of delivering it."""

    codes: list[tuple[str, str]] = field(default_factory=list)
    welcomes: list[tuple[str, str]] = field(default_factory=list)

    def send_verification_code(self, email: str, code: str) -> None:
        self.codes.append((email, code))

    def send_welcome(self, email: str, name: str) -> None:
        self.welcomes.append((email, name))

    def last_code(self, email: str) -> str:
        return next(code for to, code in reversed(self.codes) if to == email)


def register(
    service: AuthService,
    sender: RecordingEmailSender,
    email: str,
    username: str,
    password: str = PASSWORD,
    full_name: str = "Test User",
) -> AuthResult:
    """Run initiate + complete for a fresh account."""
    normalized = service.initiate(email)
    return service.complete(normalized, sender.last_code(normalized), password, full_name, username)


def api_register(client: TestClient, sender: RecordingEmailSender, email: str, username: str) -> dict:
    """Register through the HTTP API and return the response data."""
    response = client.post("/v1/auth/register/initiate", json={"email": email})
    assert response.status_code == 200, response.text
    normalized = response.json()["data"]["email"]
    response = client.post(
        "/v1/auth/register/complete",
        json={
            "email": normalized,
            "otp": sender.last_code(normalized),
            "password": PASSWORD,
            "fullName": "Test User",
            "username": username,
        },
    )
    assert response.status_code == 200, response.text
    return response.json()["data"]


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
