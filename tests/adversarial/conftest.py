"""
Shared fixtures for adversarial tests.

Provides a registered victim account on the in-memory backend for the
enumeration, replay and race condition tests.
"""

import pytest

from src.domain import AuthService
from src.domain.models import AuthResult
from tests.helpers import RecordingEmailSender, register


@pytest.fixture
def victim(auth_service: AuthService, sender: RecordingEmailSender) -> AuthResult:
    """A registered, active account."""
    return register(auth_service, sender, "victim@example.edu", "victim")
