"""
Registration and session service.

Registration Flow (per email address)
=====================================

    UNREGISTERED -> CODE_SENT -> VERIFIED_PENDING_CREATE -> ACTIVE

- initiate(): policy check, duplicate check, code issued and mailed
- complete(): code consumed, identity created, first refresh token stored,
  all in one transaction; welcome email is best-effort afterwards
- login() / refresh() / logout(): session lifecycle on an ACTIVE identity

Failure messages are collapsed wherever the difference would let a caller
enumerate accounts or guess codes.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from .codes import CodeIssuer
from .exceptions import ConflictError, DeliveryError, NotFoundError, UnauthorizedError, ValidationError
from .models import (
    AuthResult,
    CodePurpose,
    Identity,
    IdentityStats,
    PublicIdentity,
    RegistrationState,
    TokenPair,
    utcnow,
)
from .policies import EmailPolicy, OpenEmailPolicy, is_valid_email, normalize_email
from .ports import CredentialStore, EmailSender, PasswordHasher, SocialRepository
from .tokens import TokenService

logger = logging.getLogger(__name__)

INVALID_CODE_MESSAGE = "invalid or expired code"
INVALID_CREDENTIALS_MESSAGE = "invalid credentials"


@dataclass
class AuthService:
    """
    Domain service for registration and sessions.

    Orchestrates code issuance, code verification, account creation
    and token issuance over the injected ports.
    """

    store: CredentialStore
    social: SocialRepository
    code_issuer: CodeIssuer
    tokens: TokenService
    password_hasher: PasswordHasher
    email_sender: EmailSender
    email_policy: EmailPolicy = field(default_factory=OpenEmailPolicy)
    clock: Callable[[], datetime] = field(default=utcnow)

    def initiate(self, email: str) -> str:
        """
        Start registration by mailing a verification code.

        Args:
            email: User's email address (will be normalized)

        Returns:
            Normalized email address

        Raises:
            ValidationError: Malformed or disallowed address
            ConflictError: An account already uses this address
            DeliveryError: The code could not be delivered
        """
        normalized_email = self._accept_email(email)

        state = self.registration_state(normalized_email)
        if state is RegistrationState.ACTIVE:
            raise ConflictError("user with this email already exists")

        self.code_issuer.issue(normalized_email, CodePurpose.VERIFICATION)
        if state is RegistrationState.CODE_SENT:
            logger.info("Verification code reissued for %s; the previous code is void", normalized_email)
        else:
            logger.info("Verification code issued for %s", normalized_email)
        return normalized_email

    def complete(
        self,
        email: str,
        code: str,
        password: str,
        full_name: str,
        username: str,
        branch: str | None = None,
        year: str | None = None,
    ) -> AuthResult:
        """
        Verify the code and create the account.

        Code consumption, identity creation and the first refresh token
        are committed together; any failure leaves the code unconsumed
        and no identity behind.

        Raises:
            ValidationError: Malformed email or invalid/expired/used code
            ConflictError: Username (or email) already taken
        """
        normalized_email = self._accept_email(email)
        username = username.strip()
        password_hash = self.password_hasher.hash(password)
        now = self.clock()

        with self.store.transaction() as session:
            if not self.code_issuer.verify(
                normalized_email, code, CodePurpose.VERIFICATION, session=session
            ):
                raise ValidationError(INVALID_CODE_MESSAGE)

            if session.get_identity_by_username(username) is not None:
                raise ConflictError("username is already taken")
            if session.get_identity_by_email(normalized_email) is not None:
                raise ConflictError("user with this email already exists")

            identity = Identity(
                id=uuid.uuid4(),
                email=normalized_email,
                password_hash=password_hash,
                full_name=full_name.strip(),
                username=username,
                branch=branch,
                year=year,
                is_verified=True,
                is_active=True,
                created_at=now,
            )
            session.insert_identity(identity)

            pair = self.tokens.issue_token_pair(identity.id, identity.email)
            self.tokens.persist_refresh(session, identity.id, pair.refresh_token)

        logger.info("Account created for %s (%s)", identity.username, identity.id)
        self._send_welcome(identity)
        return AuthResult(
            user=identity.public(),
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
        )

    def login(self, email: str, password: str) -> AuthResult:
        """
        Authenticate with email and password.

        Unknown email, missing password, wrong password and deactivated
        account all raise the same error. The hash comparison always
        runs so timing does not reveal which case occurred.

        Raises:
            UnauthorizedError: Credentials rejected
        """
        normalized_email = normalize_email(email)

        with self.store.transaction() as session:
            identity = session.get_identity_by_email(normalized_email)

        stored_hash = identity.password_hash if identity is not None else None
        password_valid = self.password_hasher.verify(password, stored_hash)

        if identity is None or not password_valid:
            logger.info("Login rejected for %s", normalized_email)
            raise UnauthorizedError(INVALID_CREDENTIALS_MESSAGE)
        if not identity.is_active:
            logger.info("Login rejected for deactivated account %s", identity.id)
            raise UnauthorizedError(INVALID_CREDENTIALS_MESSAGE)

        pair = self.tokens.issue_token_pair(identity.id, identity.email)
        with self.store.transaction() as session:
            self.tokens.persist_refresh(session, identity.id, pair.refresh_token)
            identity = session.update_identity(identity.id, last_seen_at=self.clock()) or identity

        return AuthResult(
            user=identity.public(),
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
        )

    def refresh(self, refresh_token: str) -> TokenPair:
        """Rotate a refresh token; failures propagate as UnauthorizedError."""
        return self.tokens.rotate_refresh(refresh_token)

    def logout(self, refresh_token: str) -> None:
        """Revoke a refresh token. Always succeeds."""
        self.tokens.revoke(refresh_token)

    def get_current_user(self, identity_id: uuid.UUID) -> tuple[PublicIdentity, IdentityStats]:
        """
        Load the caller's identity with post and follow counts.

        Raises:
            NotFoundError: The identity no longer exists
        """
        with self.store.transaction() as session:
            identity = session.get_identity_by_id(identity_id)
        if identity is None:
            raise NotFoundError("user not found")
        return identity.public(), self.social.count_stats(identity_id)

    def registration_state(self, email: str) -> RegistrationState:
        """Where an email address currently sits in the registration flow."""
        normalized_email = normalize_email(email)
        with self.store.transaction() as session:
            if session.get_identity_by_email(normalized_email) is not None:
                return RegistrationState.ACTIVE
            if session.has_pending_code(normalized_email, CodePurpose.VERIFICATION, self.clock()):
                return RegistrationState.CODE_SENT
        return RegistrationState.UNREGISTERED

    def _accept_email(self, email: str) -> str:
        normalized_email = normalize_email(email)
        if not is_valid_email(normalized_email):
            raise ValidationError("please enter a valid email address")
        if not self.email_policy.accepts(normalized_email):
            raise ValidationError(self.email_policy.describe())
        return normalized_email

    def _send_welcome(self, identity: Identity) -> None:
        try:
            self.email_sender.send_welcome(identity.email, identity.full_name)
        except DeliveryError:
            logger.warning("Welcome email to %s failed", identity.email, exc_info=True)
