"""
Unit tests for domain ports and exceptions.

Tests verify:
- Adapters satisfy the port protocols structurally
- Exceptions carry their envelope code and status
- Domain purity (no web or database framework imports)
"""

from pathlib import Path

import pytest

from src.adapters.crypto.hashing import BcryptPasswordHasher
from src.adapters.realtime.broker import InProcessBroker
from src.adapters.repository import (
    InMemoryStore,
    PostgresCredentialStore,
    PostgresMessageRepository,
    PostgresPageRepository,
    PostgresSocialRepository,
)
from src.adapters.smtp.console import ConsoleEmailSender
from src.adapters.smtp.disabled import DisabledEmailSender
from src.adapters.smtp.resend import ResendEmailSender
from src.domain.exceptions import (
    ConflictError,
    DeliveryError,
    DomainError,
    ExpiredTokenError,
    ForbiddenError,
    InternalError,
    InvalidTokenError,
    NotFoundError,
    TokenError,
    UnauthorizedError,
    ValidationError,
)
from src.domain.ports import (
    CredentialSession,
    CredentialStore,
    EmailSender,
    MessagePublisher,
    MessageRepository,
    PageRepository,
    PasswordHasher,
    SocialRepository,
)

DOMAIN_DIR = Path(__file__).resolve().parents[2] / "src" / "domain"


def _protocol_members(protocol: type) -> set[str]:
    return {
        name
        for name, value in vars(protocol).items()
        if callable(value) and not name.startswith("_")
    }


class TestStructuralSubtyping:
    @pytest.mark.parametrize(
        ("adapter", "protocol"),
        [
            (InMemoryStore, CredentialStore),
            (InMemoryStore, SocialRepository),
            (PostgresCredentialStore, CredentialStore),
            (InMemoryStore, PageRepository),
            (InMemoryStore, MessageRepository),
            (PostgresSocialRepository, SocialRepository),
            (PostgresPageRepository, PageRepository),
            (PostgresMessageRepository, MessageRepository),
            (InProcessBroker, MessagePublisher),
            (ConsoleEmailSender, EmailSender),
            (DisabledEmailSender, EmailSender),
            (ResendEmailSender, EmailSender),
            (BcryptPasswordHasher, PasswordHasher),
        ],
    )
    def test_adapter_implements_protocol(self, adapter: type, protocol: type) -> None:
        missing = {name for name in _protocol_members(protocol) if not hasattr(adapter, name)}
        assert not missing, f"{adapter.__name__} is missing {missing}"

    @pytest.mark.parametrize("adapter", [InMemoryStore, ConsoleEmailSender, BcryptPasswordHasher, InProcessBroker])
    def test_no_explicit_protocol_inheritance(self, adapter: type) -> None:
        assert adapter.__bases__ == (object,)

    def test_memory_session_implements_credential_session(self, store: InMemoryStore) -> None:
        with store.transaction() as session:
            missing = {n for n in _protocol_members(CredentialSession) if not hasattr(session, n)}
        assert not missing


class TestExceptions:
    @pytest.mark.parametrize(
        ("error", "code", "status"),
        [
            (ValidationError, "BAD_REQUEST", 400),
            (UnauthorizedError, "UNAUTHORIZED", 401),
            (ForbiddenError, "FORBIDDEN", 403),
            (NotFoundError, "NOT_FOUND", 404),
            (ConflictError, "CONFLICT", 409),
            (DeliveryError, "INTERNAL_ERROR", 500),
            (InternalError, "INTERNAL_ERROR", 500),
        ],
    )
    def test_envelope_attributes(self, error: type[DomainError], code: str, status: int) -> None:
        assert issubclass(error, DomainError)
        assert error.code == code
        assert error.status_code == status

    def test_message_defaults(self) -> None:
        assert NotFoundError().message == "Not found"
        assert NotFoundError("post not found").message == "post not found"
        assert str(ConflictError("taken")) == "taken"

    def test_details_carried(self) -> None:
        error = ValidationError("bad", details=[{"field": "email"}])
        assert error.details == [{"field": "email"}]

    def test_token_errors_are_not_domain_errors(self) -> None:
        assert issubclass(InvalidTokenError, TokenError)
        assert issubclass(ExpiredTokenError, TokenError)
        assert not issubclass(TokenError, DomainError)


class TestDomainPurity:
    """Domain layer has no web or database framework imports."""

    @pytest.mark.parametrize("framework", ["fastapi", "pydantic", "psycopg", "starlette", "httpx", "bcrypt"])
    def test_no_framework_imports(self, framework: str) -> None:
        offenders = [
            path.name
            for path in DOMAIN_DIR.glob("*.py")
            if f"import {framework}" in path.read_text() or f"from {framework}" in path.read_text()
        ]
        assert offenders == []
