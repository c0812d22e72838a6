"""
FastAPI dependencies - Dependency injection factories.

This module wires domain services to infrastructure adapters once per
application (``build_services``) and provides Depends() factories that
hand them to routes, plus the bearer/cookie authentication guards.
"""

from dataclasses import dataclass
from datetime import timedelta

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from psycopg_pool import ConnectionPool

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
from src.config.settings import Settings
from src.domain import (
    AuthService,
    Authenticator,
    CodeIssuer,
    MessageService,
    PageService,
    PostService,
    ProfileService,
    TokenService,
    policy_for_domains,
)
from src.domain.models import AuthenticatedUser
from src.domain.ports import (
    CredentialStore,
    EmailSender,
    MessagePublisher,
    MessageRepository,
    PageRepository,
    PasswordHasher,
    SocialRepository,
)


@dataclass
class Services:
    """Everything a request handler can ask for, built once at startup."""

    settings: Settings
    store: CredentialStore
    social: SocialRepository
    email_sender: EmailSender
    tokens: TokenService
    auth: AuthService
    authenticator: Authenticator
    profiles: ProfileService
    posts: PostService
    pages: PageService
    messages: MessageService
    publisher: MessagePublisher


def build_email_sender(settings: Settings) -> EmailSender:
    """
    Pick the email transport.

    Resend when an API key is configured; otherwise console logging in
    development, or a sender that refuses to deliver.
    """
    if settings.resend_api_key is not None:
        return ResendEmailSender(
            api_key=settings.resend_api_key.get_secret_value(),
            sender=settings.email_from,
            app_url=settings.app_url,
            code_ttl_minutes=settings.otp_ttl_minutes,
        )
    if settings.email_dev_fallback:
        return ConsoleEmailSender(app_url=settings.app_url, code_ttl_minutes=settings.otp_ttl_minutes)
    return DisabledEmailSender()


def build_services(
    settings: Settings,
    pool: ConnectionPool | None = None,
    email_sender: EmailSender | None = None,
    password_hasher: PasswordHasher | None = None,
    publisher: MessagePublisher | None = None,
) -> Services:
    """
    Wire domain services over the configured adapters.

    Args:
        settings: Application settings
        pool: PostgreSQL pool; required unless storage_backend is "memory"
        email_sender: Override the transport chosen from settings
        password_hasher: Override the bcrypt hasher (tests use a low cost)
        publisher: Real-time hand-off for new messages; an in-process broker by default
    """
    if settings.storage_backend == "memory":
        memory = InMemoryStore()
        store: CredentialStore = memory
        social: SocialRepository = memory
        pages: PageRepository = memory
        messages: MessageRepository = memory
    else:
        if pool is None:
            raise ValueError("a connection pool is required for the postgres backend")
        store = PostgresCredentialStore(pool)
        social = PostgresSocialRepository(pool)
        pages = PostgresPageRepository(pool)
        messages = PostgresMessageRepository(pool)

    sender = email_sender or build_email_sender(settings)
    hasher = password_hasher or BcryptPasswordHasher(rounds=settings.bcrypt_cost)
    publisher = publisher or InProcessBroker()

    tokens = TokenService(
        store=store,
        access_secret=settings.jwt_secret.get_secret_value(),
        refresh_secret=settings.jwt_refresh_secret.get_secret_value(),
        algorithm=settings.jwt_algorithm,
        access_ttl=timedelta(minutes=settings.access_token_ttl_minutes),
        refresh_ttl=timedelta(days=settings.refresh_token_ttl_days),
    )
    code_issuer = CodeIssuer(store=store, email_sender=sender, ttl_minutes=settings.otp_ttl_minutes)
    auth = AuthService(
        store=store,
        social=social,
        code_issuer=code_issuer,
        tokens=tokens,
        password_hasher=hasher,
        email_sender=sender,
        email_policy=policy_for_domains(settings.allowed_email_domains),
    )
    return Services(
        settings=settings,
        store=store,
        social=social,
        email_sender=sender,
        tokens=tokens,
        auth=auth,
        authenticator=Authenticator(tokens=tokens, store=store),
        profiles=ProfileService(store=store, social=social),
        posts=PostService(social=social, pages=pages),
        pages=PageService(store=store, pages=pages, social=social),
        messages=MessageService(store=store, messages=messages, publisher=publisher),
        publisher=publisher,
    )


def get_services(request: Request) -> Services:
    """
    Get the service container from app state.

    The container is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.services


def get_settings_dep(services: Services = Depends(get_services)) -> Settings:
    return services.settings


def get_auth_service(services: Services = Depends(get_services)) -> AuthService:
    return services.auth


def get_profile_service(services: Services = Depends(get_services)) -> ProfileService:
    return services.profiles


def get_post_service(services: Services = Depends(get_services)) -> PostService:
    return services.posts


def get_page_service(services: Services = Depends(get_services)) -> PageService:
    return services.pages


def get_message_service(services: Services = Depends(get_services)) -> MessageService:
    return services.messages


def get_authenticator(services: Services = Depends(get_services)) -> Authenticator:
    return services.authenticator


# Bearer security scheme for OpenAPI documentation. auto_error is off so a
# missing header falls through to the cookie and then to our own 401.
http_bearer = HTTPBearer(auto_error=False)


def get_access_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(http_bearer),
    settings: Settings = Depends(get_settings_dep),
) -> str | None:
    """Bearer header first, then the access token cookie."""
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(settings.access_cookie_name)


def require_user(
    request: Request,
    token: str | None = Depends(get_access_token),
    authenticator: Authenticator = Depends(get_authenticator),
) -> AuthenticatedUser:
    """Reject the request with 401 unless it carries a valid access token."""
    user = authenticator.authenticate(token)
    request.state.user = user
    return user


def optional_user(
    request: Request,
    token: str | None = Depends(get_access_token),
    authenticator: Authenticator = Depends(get_authenticator),
) -> AuthenticatedUser | None:
    """Attach the caller when the token is valid; never rejects."""
    user = authenticator.try_authenticate(token)
    request.state.user = user
    return user
