"""
Email acceptance policies.

Deployments either accept any syntactically valid address or restrict
registration to one or more institutional domains. Both are the same
``EmailPolicy`` capability injected into the auth service.
"""

import re
from collections.abc import Iterable
from typing import Protocol

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(email: str) -> str:
    """
    Normalize email address for consistent storage and lookup.

    Applies: strip whitespace + lowercase
    """
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_PATTERN.match(email))


class EmailPolicy(Protocol):
    """Decides whether an (already normalized) address may register."""

    def accepts(self, email: str) -> bool: ...

    def describe(self) -> str:
        """Human-readable rejection reason."""
        ...


class OpenEmailPolicy:
    """Accepts every syntactically valid address."""

    def accepts(self, email: str) -> bool:
        return is_valid_email(email)

    def describe(self) -> str:
        return "Please enter a valid email address"


class DomainSuffixPolicy:
    """Accepts only addresses whose domain is in the allowed list."""

    def __init__(self, domains: Iterable[str]) -> None:
        self._domains = tuple(d.strip().lower().lstrip("@") for d in domains if d.strip())
        if not self._domains:
            raise ValueError("DomainSuffixPolicy requires at least one domain")

    @property
    def domains(self) -> tuple[str, ...]:
        return self._domains

    def accepts(self, email: str) -> bool:
        if not is_valid_email(email):
            return False
        return email.rsplit("@", 1)[1] in self._domains

    def describe(self) -> str:
        allowed = ", ".join(f"@{d}" for d in self._domains)
        return f"Only {allowed} email addresses are allowed"


def policy_for_domains(domains: Iterable[str]) -> EmailPolicy:
    """Build the policy for a configured domain list (empty means open)."""
    domains = [d for d in domains if d.strip()]
    if not domains:
        return OpenEmailPolicy()
    return DomainSuffixPolicy(domains)
