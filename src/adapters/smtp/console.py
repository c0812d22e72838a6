"""
Console email sender adapter - Used when no Resend key is configured.

Writes what would have been mailed to the application log so codes can be
read from the terminal during local development. Never raises, so the
registration flow works without network access.
"""

import logging

logger = logging.getLogger(__name__)


class ConsoleEmailSender:
    """
    Implements EmailSender protocol via logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, app_url: str | None = None, code_ttl_minutes: int | None = None) -> None:
        self._app_url = app_url
        self._code_ttl_minutes = code_ttl_minutes

    def send_verification_code(self, email: str, code: str) -> None:
        """
        Log the verification code at INFO.

        Args:
            email: Recipient, already normalized by the domain layer
            code: 6-digit verification code
        """
        if self._code_ttl_minutes is None:
            logger.info("[VERIFICATION] Email: %s Code: %s", email, code)
        else:
            logger.info(
                "[VERIFICATION] Email: %s Code: %s (valid %d min)", email, code, self._code_ttl_minutes
            )

    def send_welcome(self, email: str, name: str) -> None:
        if self._app_url:
            logger.info("[WELCOME] Email: %s Name: %s Login: %s/login", email, name, self._app_url.rstrip("/"))
        else:
            logger.info("[WELCOME] Email: %s Name: %s", email, name)
