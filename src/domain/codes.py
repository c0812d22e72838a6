"""
One-time code issuance and verification.

Codes are six digits (100000-999999), bound to (email, purpose), live for
a configured number of minutes, and can be consumed exactly once. Issuing
a new code removes every earlier code for the same pair, so only the
newest code can ever verify.
"""

import logging
import secrets
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from .models import CodePurpose, OneTimeCode, utcnow
from .ports import CredentialSession, CredentialStore, EmailSender

logger = logging.getLogger(__name__)

CODE_MIN = 100000
CODE_MAX = 999999


def generate_code() -> str:
    """Uniformly random 6-digit code, never with a leading zero."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


@dataclass
class CodeIssuer:
    """Issues and verifies one-time codes for email ownership."""

    store: CredentialStore
    email_sender: EmailSender
    ttl_minutes: int = 10
    clock: Callable[[], datetime] = field(default=utcnow)

    def issue(self, email: str, purpose: CodePurpose = CodePurpose.VERIFICATION) -> str:
        """
        Replace any existing code for (email, purpose) and deliver a new one.

        Args:
            email: Normalized email address
            purpose: Purpose tag the code is bound to

        Returns:
            The plaintext code (already handed to the email sender)

        Raises:
            DeliveryError: If the email sender cannot deliver the code
        """
        now = self.clock()
        code = OneTimeCode(
            id=uuid.uuid4(),
            email=email,
            code=generate_code(),
            purpose=purpose,
            expires_at=now + timedelta(minutes=self.ttl_minutes),
            created_at=now,
        )

        with self.store.transaction() as session:
            removed = session.delete_codes(email, purpose)
            session.insert_code(code)

        if removed:
            logger.debug("Replaced %d earlier %s code(s) for %s", removed, purpose.value, email)

        self.email_sender.send_verification_code(email, code.code)
        return code.code

    def verify(
        self,
        email: str,
        code: str,
        purpose: CodePurpose = CodePurpose.VERIFICATION,
        session: CredentialSession | None = None,
    ) -> bool:
        """
        Consume a matching, unconsumed, unexpired code.

        Wrong, expired and already-used codes are indistinguishable.

        Args:
            email: Normalized email address
            code: Code submitted by the user
            purpose: Purpose tag the code must carry
            session: Join the caller's transaction instead of opening one

        Returns:
            True if the code was valid and is now consumed
        """
        if not (len(code) == 6 and code.isascii() and code.isdigit()):
            return False

        now = self.clock()
        if session is not None:
            return session.consume_code(email, code, purpose, now)

        with self.store.transaction() as own_session:
            return own_session.consume_code(email, code, purpose, now)
