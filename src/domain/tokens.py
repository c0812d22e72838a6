"""
Access and refresh token service.

Access tokens are stateless HS256 JWTs verified by signature and ``exp``
alone. Refresh tokens are JWTs signed with a different secret, carry
``type="refresh"``, and are only honoured while a matching row exists in
the credential store. Every refresh deletes the presented row and inserts
a new one (rotation). Rows are stored by SHA-256 digest, never raw.
"""

import hashlib
import logging
import secrets
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

import jwt

from .exceptions import ExpiredTokenError, InvalidTokenError, UnauthorizedError
from .models import AccessClaims, RefreshTokenRecord, TokenPair, utcnow
from .ports import CredentialSession, CredentialStore

logger = logging.getLogger(__name__)

REFRESH_TOKEN_TYPE = "refresh"
INVALID_REFRESH_MESSAGE = "invalid refresh token"


def hash_token(token: str) -> str:
    """Digest used to key refresh token rows."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass
class TokenService:
    """Mints, verifies, rotates and revokes session tokens."""

    store: CredentialStore
    access_secret: str
    refresh_secret: str
    algorithm: str = "HS256"
    access_ttl: timedelta = timedelta(minutes=15)
    refresh_ttl: timedelta = timedelta(days=7)
    clock: Callable[[], datetime] = field(default=utcnow)

    def __post_init__(self) -> None:
        if self.access_secret == self.refresh_secret:
            raise ValueError("access and refresh tokens must use distinct secrets")

    def issue_token_pair(self, identity_id: UUID, email: str) -> TokenPair:
        """
        Mint an access token and a refresh token for an identity.

        The refresh token is not persisted here; see ``persist_refresh``.
        """
        now = self.clock()
        base = {"sub": str(identity_id), "email": email, "iat": now}

        access = jwt.encode(
            {**base, "exp": now + self.access_ttl, "jti": secrets.token_urlsafe(16)},
            self.access_secret,
            algorithm=self.algorithm,
        )
        refresh = jwt.encode(
            {
                **base,
                "type": REFRESH_TOKEN_TYPE,
                "exp": now + self.refresh_ttl,
                "jti": secrets.token_urlsafe(16),
            },
            self.refresh_secret,
            algorithm=self.algorithm,
        )
        return TokenPair(access_token=access, refresh_token=refresh)

    def verify_access(self, token: str) -> AccessClaims:
        """
        Verify an access token's signature and expiry.

        Raises:
            ExpiredTokenError: The exp claim has lapsed
            InvalidTokenError: Any other defect, including a refresh token
        """
        payload = self._decode(token, self.access_secret)
        if payload.get("type") == REFRESH_TOKEN_TYPE:
            raise InvalidTokenError("refresh token presented as access token")
        return self._claims(payload)

    def persist_refresh(self, session: CredentialSession, identity_id: UUID, refresh_token: str) -> None:
        """Store a freshly minted refresh token inside the caller's transaction."""
        now = self.clock()
        session.insert_refresh_token(
            RefreshTokenRecord(
                id=uuid.uuid4(),
                token_hash=hash_token(refresh_token),
                user_id=identity_id,
                expires_at=now + self.refresh_ttl,
                created_at=now,
            )
        )

    def rotate_refresh(self, old_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new pair, invalidating the old one.

        Signature, expiry, type, store presence, owner and row expiry must
        all check out; every failure collapses into the same error.

        Raises:
            UnauthorizedError: The token cannot be rotated
        """
        try:
            payload = self._decode(old_token, self.refresh_secret)
            if payload.get("type") != REFRESH_TOKEN_TYPE:
                raise InvalidTokenError("not a refresh token")
            claims = self._claims(payload)
        except (InvalidTokenError, ExpiredTokenError) as exc:
            logger.info("Refresh rejected: %s", exc)
            raise UnauthorizedError(INVALID_REFRESH_MESSAGE) from None

        with self.store.transaction() as session:
            if not session.take_refresh_token(hash_token(old_token), claims.identity_id, self.clock()):
                logger.info("Refresh rejected: no live row for user %s", claims.identity_id)
                raise UnauthorizedError(INVALID_REFRESH_MESSAGE)

            pair = self.issue_token_pair(claims.identity_id, claims.email)
            self.persist_refresh(session, claims.identity_id, pair.refresh_token)

        return pair

    def revoke(self, token: str) -> None:
        """Delete every stored row for this token. Unknown tokens are ignored."""
        with self.store.transaction() as session:
            removed = session.delete_refresh_tokens(hash_token(token))
        logger.debug("Revoked %d refresh token row(s)", removed)

    def _decode(self, token: str, secret: str) -> dict:
        try:
            return jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise ExpiredTokenError("token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidTokenError(str(exc)) from exc

    @staticmethod
    def _claims(payload: dict) -> AccessClaims:
        try:
            return AccessClaims(identity_id=UUID(payload["sub"]), email=payload["email"])
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidTokenError("malformed claims") from exc
