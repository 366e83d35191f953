"""Tests for the ownership guard and the password hasher."""

import pytest

from shortener.access import AccessGuard, mask_identity
from shortener.enums import ExistenceDisclosure
from shortener.errors import AccessDeniedError, NotFoundError, PreconditionError, ValidationError
from shortener.models import Link
from shortener.passwords import PasswordHasher


@pytest.mark.parametrize(
    "identity,expected",
    [
        ("user-alice-0001", "use***001"),
        ("abcdefgh", "abc***fgh"),
        ("short", "***"),
        ("", "***"),
        (None, "***"),
    ],
)
def test_mask_identity(identity, expected):
    assert mask_identity(identity) == expected


class TestAccessGuard:
    def test_owner_match_is_exact(self):
        link = Link(code="x", long_url="https://example.com", owner_id="user-1")
        assert AccessGuard.is_owner("user-1", link)
        assert not AccessGuard.is_owner("USER-1", link)
        assert not AccessGuard.is_owner("", link)

    def test_missing_owner_matches_nobody(self):
        link = Link(code="x", long_url="https://example.com", owner_id=None)
        assert not AccessGuard.is_owner("user-1", link)
        assert not AccessGuard.is_owner(None, link)

    def test_require_identity(self):
        assert AccessGuard.require_identity("user-1") == "user-1"
        with pytest.raises(PreconditionError):
            AccessGuard.require_identity(None)

    @pytest.mark.parametrize(
        "disclosure,error",
        [(ExistenceDisclosure.REVEAL, AccessDeniedError), (ExistenceDisclosure.CONCEAL, NotFoundError)],
    )
    def test_ensure_owner_denial(self, disclosure, error):
        link = Link(code="x", long_url="https://example.com", owner_id="user-1")
        guard = AccessGuard(disclosure)
        guard.ensure_owner("user-1", link)
        with pytest.raises(error):
            guard.ensure_owner("user-2", link)


class TestPasswordHasher:
    def test_hash_is_salted_and_verifiable(self):
        hasher = PasswordHasher(rounds=4)
        first, second = hasher.hash("s3cret"), hasher.hash("s3cret")

        assert first != second
        assert first.startswith("$2")
        assert hasher.verify("s3cret", first)
        assert not hasher.verify("S3cret", first)

    def test_malformed_hash_is_a_mismatch(self):
        assert PasswordHasher(rounds=4).verify("s3cret", "not-a-bcrypt-hash") is False

    def test_password_over_72_bytes_rejected(self):
        with pytest.raises(ValidationError):
            PasswordHasher(rounds=4).hash("é" * 37)
