"""
Adversarial tests for code guessing and token replay.

Verifies that:
- Wrong code guesses never succeed or burn the real code, and a reissued
  code kills the old one (HTTP throttling of guesses is in test_rate_limiting)
- A consumed code cannot be replayed
- A rotated-out or revoked refresh token cannot be replayed
- Access tokens are not accepted as refresh tokens and vice versa
"""

import pytest

from src.adapters.repository import InMemoryStore
from src.domain import AuthService, Authenticator, TokenService
from src.domain.exceptions import UnauthorizedError, ValidationError
from src.domain.models import AuthResult
from tests.helpers import PASSWORD, RecordingEmailSender

pytestmark = pytest.mark.adversarial


class TestCodeGuessing:
    def test_wrong_guesses_never_match_or_consume_the_code(
        self, auth_service: AuthService, sender: RecordingEmailSender
    ) -> None:
        """Service-level property; the HTTP layer caps how many guesses get this far."""
        auth_service.initiate("new@example.edu")
        real = sender.last_code("new@example.edu")

        for guess in range(100000, 100005):
            if str(guess) == real:
                continue
            with pytest.raises(ValidationError):
                auth_service.complete("new@example.edu", str(guess), PASSWORD, "A B", "ab1")

        result = auth_service.complete("new@example.edu", real, PASSWORD, "A B", "ab1")
        assert result.user.email == "new@example.edu"

    def test_reissued_code_invalidates_previous(
        self, auth_service: AuthService, sender: RecordingEmailSender
    ) -> None:
        auth_service.initiate("new@example.edu")
        first = sender.last_code("new@example.edu")
        auth_service.initiate("new@example.edu")
        second = sender.last_code("new@example.edu")

        if first != second:
            with pytest.raises(ValidationError):
                auth_service.complete("new@example.edu", first, PASSWORD, "A B", "ab1")
        assert auth_service.complete("new@example.edu", second, PASSWORD, "A B", "ab1").user.username == "ab1"

    def test_code_for_one_email_does_not_register_another(
        self, auth_service: AuthService, sender: RecordingEmailSender
    ) -> None:
        auth_service.initiate("attacker@example.edu")
        code = sender.last_code("attacker@example.edu")
        auth_service.initiate("victim2@example.edu")

        with pytest.raises(ValidationError):
            auth_service.complete("victim2@example.edu", code, PASSWORD, "A B", "ab1")


class TestTokenReplay:
    def test_rotated_refresh_token_replay_rejected(
        self, auth_service: AuthService, victim: AuthResult
    ) -> None:
        auth_service.refresh(victim.refresh_token)

        with pytest.raises(UnauthorizedError, match="invalid refresh token"):
            auth_service.refresh(victim.refresh_token)

    def test_revoked_refresh_token_replay_rejected(
        self, auth_service: AuthService, victim: AuthResult
    ) -> None:
        auth_service.logout(victim.refresh_token)

        with pytest.raises(UnauthorizedError):
            auth_service.refresh(victim.refresh_token)

    def test_access_token_cannot_refresh(self, auth_service: AuthService, victim: AuthResult) -> None:
        with pytest.raises(UnauthorizedError):
            auth_service.refresh(victim.access_token)

    def test_refresh_token_cannot_authenticate(
        self, tokens: TokenService, store: InMemoryStore, victim: AuthResult
    ) -> None:
        authenticator = Authenticator(tokens=tokens, store=store)

        with pytest.raises(UnauthorizedError, match="invalid token"):
            authenticator.authenticate(victim.refresh_token)

    def test_tampered_access_token_rejected(
        self, tokens: TokenService, store: InMemoryStore, victim: AuthResult
    ) -> None:
        header, payload, signature = victim.access_token.split(".")
        tampered = ".".join([header, payload, "A" * len(signature)])

        with pytest.raises(UnauthorizedError, match="invalid token"):
            Authenticator(tokens=tokens, store=store).authenticate(tampered)
