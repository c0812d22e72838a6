"""
bcrypt password hasher adapter - Implements PasswordHasher protocol.

Timing Oracle Prevention:
------------------------
``verify`` always performs one bcrypt comparison. When there is no stored
digest (unknown email, account without a password) it compares against a
pre-computed dummy hash of the same cost, so a missing account costs the
same time as a wrong password.
"""

import logging

import bcrypt

from src.domain.exceptions import ValidationError

logger = logging.getLogger(__name__)

_DUMMY_PASSWORD = b"dummy_password_for_timing_safety"
MAX_PASSWORD_BYTES = 72  # bcrypt ignores or rejects anything longer


class BcryptPasswordHasher:
    """
    Implements PasswordHasher protocol via bcrypt.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, rounds: int = 12) -> None:
        if rounds < 4:
            raise ValueError("bcrypt rounds must be at least 4")
        self._rounds = rounds
        self._dummy_hash = bcrypt.hashpw(_DUMMY_PASSWORD, bcrypt.gensalt(rounds))

    def hash(self, password: str) -> str:
        encoded = password.encode()
        if len(encoded) > MAX_PASSWORD_BYTES:
            raise ValidationError("password is too long")
        return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self._rounds)).decode()

    def verify(self, password: str, digest: str | None) -> bool:
        stored = digest.encode() if digest else self._dummy_hash
        try:
            matched = bcrypt.checkpw(password.encode(), stored)
        except ValueError:
            # Corrupt digest in storage; treat as a mismatch
            logger.warning("Stored password digest is not a valid bcrypt hash")
            return False
        return matched and digest is not None
