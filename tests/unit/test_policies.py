"""Unit tests for email normalization and acceptance policies."""

import pytest

from src.domain.policies import (
    DomainSuffixPolicy,
    OpenEmailPolicy,
    is_valid_email,
    normalize_email,
    policy_for_domains,
)


class TestNormalizeEmail:
    def test_strips_and_lowercases(self) -> None:
        assert normalize_email("  User@Example.COM  ") == "user@example.com"

    def test_idempotent(self) -> None:
        assert normalize_email(normalize_email(" A@B.co ")) == "a@b.co"


class TestIsValidEmail:
    @pytest.mark.parametrize("email", ["a@b.co", "first.last@uni.example.edu", "x+tag@example.com"])
    def test_valid(self, email: str) -> None:
        assert is_valid_email(email)

    @pytest.mark.parametrize("email", ["", "plain", "a@b", "@b.co", "a@.co ", "a b@c.de", "a@@b.co"])
    def test_invalid(self, email: str) -> None:
        assert not is_valid_email(email)


class TestOpenEmailPolicy:
    def test_accepts_any_domain(self) -> None:
        policy = OpenEmailPolicy()
        assert policy.accepts("someone@gmail.com")
        assert policy.accepts("someone@campus.edu")


class TestDomainSuffixPolicy:
    def test_accepts_listed_domain(self) -> None:
        assert DomainSuffixPolicy(["campus.edu"]).accepts("student@campus.edu")

    def test_rejects_other_domain(self) -> None:
        assert not DomainSuffixPolicy(["campus.edu"]).accepts("student@gmail.com")

    def test_rejects_lookalike_domain(self) -> None:
        policy = DomainSuffixPolicy(["campus.edu"])
        assert not policy.accepts("student@evilcampus.edu")
        assert not policy.accepts("student@campus.edu.evil.com")

    def test_domains_normalized(self) -> None:
        policy = DomainSuffixPolicy([" @Campus.EDU ", "other.edu"])
        assert policy.domains == ("campus.edu", "other.edu")

    def test_describe_lists_domains(self) -> None:
        assert DomainSuffixPolicy(["a.edu", "b.edu"]).describe() == "Only @a.edu, @b.edu email addresses are allowed"

    def test_requires_a_domain(self) -> None:
        with pytest.raises(ValueError):
            DomainSuffixPolicy([" "])


class TestPolicyForDomains:
    def test_empty_list_is_open(self) -> None:
        assert isinstance(policy_for_domains([]), OpenEmailPolicy)

    def test_blank_entries_ignored(self) -> None:
        assert isinstance(policy_for_domains(["", "  "]), OpenEmailPolicy)

    def test_domains_restrict(self) -> None:
        policy = policy_for_domains(["campus.edu"])
        assert isinstance(policy, DomainSuffixPolicy)
        assert not policy.accepts("x@gmail.com")
