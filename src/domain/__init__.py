"""
Domain layer - Business logic with no web or database framework imports.

This package contains registration, session, profile, post, page and
messaging logic.
It defines its own port interfaces for infrastructure abstraction;
adapters under ``src.adapters`` implement them.
"""

from .auth import AuthService
from .authenticator import Authenticator
from .codes import CodeIssuer
from .exceptions import (
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
from .messaging import MessageService
from .models import CodePurpose, RegistrationState
from .pages import PageService
from .policies import DomainSuffixPolicy, EmailPolicy, OpenEmailPolicy, policy_for_domains
from .ports import (
    CredentialSession,
    CredentialStore,
    EmailSender,
    MessagePublisher,
    MessageRepository,
    PageRepository,
    PasswordHasher,
    SocialRepository,
)
from .social import PostService, ProfileService
from .tokens import TokenService

__all__ = [
    "AuthService",
    "Authenticator",
    "CodeIssuer",
    "CodePurpose",
    "ConflictError",
    "CredentialSession",
    "CredentialStore",
    "DeliveryError",
    "DomainError",
    "DomainSuffixPolicy",
    "EmailPolicy",
    "EmailSender",
    "ExpiredTokenError",
    "ForbiddenError",
    "InternalError",
    "InvalidTokenError",
    "MessagePublisher",
    "MessageRepository",
    "MessageService",
    "NotFoundError",
    "OpenEmailPolicy",
    "PageRepository",
    "PageService",
    "PasswordHasher",
    "PostService",
    "ProfileService",
    "RegistrationState",
    "SocialRepository",
    "TokenError",
    "TokenService",
    "UnauthorizedError",
    "ValidationError",
    "policy_for_domains",
]
