"""
Request authentication primitive.

``authenticate`` fails closed; ``try_authenticate`` returns None instead of
failing so routes can serve anonymous and signed-in callers alike. Both
run the same verify-then-load steps.
"""

import logging
from dataclasses import dataclass

from .exceptions import ExpiredTokenError, InvalidTokenError, UnauthorizedError
from .models import AuthenticatedUser
from .ports import CredentialStore
from .tokens import TokenService

logger = logging.getLogger(__name__)


@dataclass
class Authenticator:
    tokens: TokenService
    store: CredentialStore

    def authenticate(self, token: str | None) -> AuthenticatedUser:
        """
        Resolve an access token to an active identity.

        Raises:
            UnauthorizedError: Missing, invalid or expired token, or the
                identity is gone or deactivated
        """
        if not token:
            raise UnauthorizedError("access token is required")

        try:
            claims = self.tokens.verify_access(token)
        except ExpiredTokenError:
            raise UnauthorizedError("token expired") from None
        except InvalidTokenError:
            raise UnauthorizedError("invalid token") from None

        with self.store.transaction() as session:
            identity = session.get_identity_by_id(claims.identity_id)

        if identity is None or not identity.is_active:
            raise UnauthorizedError("user not found or inactive")

        return AuthenticatedUser(id=identity.id, email=identity.email)

    def try_authenticate(self, token: str | None) -> AuthenticatedUser | None:
        if not token:
            return None
        try:
            return self.authenticate(token)
        except UnauthorizedError as exc:
            logger.debug("Optional authentication skipped: %s", exc.message)
            return None
