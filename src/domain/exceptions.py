"""
Domain exceptions - Semantic error types for registration and sessions.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.
Each error carries the machine-readable code and HTTP status the
API layer uses to build the error envelope.
"""


class DomainError(Exception):
    """Base class for domain errors."""

    code = "INTERNAL_ERROR"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, details: list[dict] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(DomainError):
    """Malformed or disallowed input."""

    code = "BAD_REQUEST"
    status_code = 400
    default_message = "Bad request"


class UnauthorizedError(DomainError):
    """Missing, invalid or expired credential, or failed login."""

    code = "UNAUTHORIZED"
    status_code = 401
    default_message = "Unauthorized"


class ForbiddenError(DomainError):
    """Authenticated caller is not allowed to act on the resource."""

    code = "FORBIDDEN"
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(DomainError):
    """Referenced entity does not exist."""

    code = "NOT_FOUND"
    status_code = 404
    default_message = "Not found"


class ConflictError(DomainError):
    """Uniqueness violation (email, username, follow)."""

    code = "CONFLICT"
    status_code = 409
    default_message = "Conflict"


class DeliveryError(DomainError):
    """Email transport could not deliver a message."""

    default_message = "Failed to send email"


class InternalError(DomainError):
    """Downstream infrastructure failure."""

    pass


class TokenError(Exception):
    """Base class for token verification failures (never sent to clients as-is)."""

    pass


class InvalidTokenError(TokenError):
    """Bad signature, malformed token, or wrong token type."""

    pass


class ExpiredTokenError(TokenError):
    """Token's exp claim has lapsed."""

    pass
