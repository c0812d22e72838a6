"""
Disabled email sender adapter - Implements EmailSender protocol.

Selected when no transport is configured and the development console
fallback is switched off: every send fails with ``DeliveryError``.
"""

import logging

from src.domain.exceptions import DeliveryError

logger = logging.getLogger(__name__)

_NOT_CONFIGURED = "email service not configured"


class DisabledEmailSender:
    """Implements EmailSender protocol by refusing to send."""

    def send_verification_code(self, email: str, code: str) -> None:
        logger.error("Cannot send verification code to %s: %s", email, _NOT_CONFIGURED)
        raise DeliveryError(_NOT_CONFIGURED)

    def send_welcome(self, email: str, name: str) -> None:
        logger.error("Cannot send welcome email to %s: %s", email, _NOT_CONFIGURED)
        raise DeliveryError(_NOT_CONFIGURED)
