"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- An in-memory store and fast bcrypt hasher
- Domain services wired over them
- A full FastAPI app on the in-memory backend with a recording email sender
- The shared rate limiter, switched off unless a test turns it on
"""

from collections.abc import Generator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.adapters.crypto.hashing import BcryptPasswordHasher
from src.adapters.repository import InMemoryStore
from src.api.dependencies import Services, build_services
from src.api.main import create_app
from src.api.rate_limiting import limiter
from src.config.settings import Settings
from src.domain import AuthService, CodeIssuer, TokenService
from tests.helpers import ACCESS_SECRET, REFRESH_SECRET, RecordingEmailSender


@pytest.fixture(autouse=True)
def _rate_limiter_off() -> Generator[None, None, None]:
    """Start every test with the shared limiter off and its counters empty."""
    limiter.enabled = False
    limiter.reset()
    yield
    limiter.enabled = False
    limiter.reset()


@pytest.fixture(scope="session")
def hasher() -> BcryptPasswordHasher:
    """Minimum-cost bcrypt hasher; cost does not change behaviour."""
    return BcryptPasswordHasher(rounds=4)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def tokens(store: InMemoryStore) -> TokenService:
    return TokenService(store=store, access_secret=ACCESS_SECRET, refresh_secret=REFRESH_SECRET)


@pytest.fixture
def code_issuer(store: InMemoryStore, sender: RecordingEmailSender) -> CodeIssuer:
    return CodeIssuer(store=store, email_sender=sender)


@pytest.fixture
def auth_service(
    store: InMemoryStore,
    sender: RecordingEmailSender,
    code_issuer: CodeIssuer,
    tokens: TokenService,
    hasher: BcryptPasswordHasher,
) -> AuthService:
    return AuthService(
        store=store,
        social=store,
        code_issuer=code_issuer,
        tokens=tokens,
        password_hasher=hasher,
        email_sender=sender,
    )


# Full application on the in-memory backend


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="test",
        storage_backend="memory",
        jwt_secret=ACCESS_SECRET,
        jwt_refresh_secret=REFRESH_SECRET,
        bcrypt_cost=4,
        allowed_email_domains=[],
        resend_api_key=None,
        rate_limit_enabled=False,
    )


@pytest.fixture
def services(settings: Settings, sender: RecordingEmailSender, hasher: BcryptPasswordHasher) -> Services:
    return build_services(settings, email_sender=sender, password_hasher=hasher)


@pytest.fixture
def app(settings: Settings, services: Services) -> FastAPI:
    return create_app(settings=settings, services=services)


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    with TestClient(app) as test_client:
        yield test_client
