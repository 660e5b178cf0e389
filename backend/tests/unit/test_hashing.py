"""Tests for secret hashing and generation."""

import hashlib
import re

from app.core.hashing import (
    generate_passcode,
    generate_token,
    hash_secret,
    secrets_match,
)

_PEPPER = "pepper"


class TestHashSecret:
    """Tests for hash_secret()."""

    def test_is_sha256_of_pepper_then_secret(self):
        """Digest is SHA-256 over pepper + secret."""
        expected = hashlib.sha256(b"pepper123456").hexdigest()
        assert hash_secret("123456", _PEPPER) == expected

    def test_is_deterministic(self):
        """Same input always gives the same digest."""
        assert hash_secret("abc", _PEPPER) == hash_secret("abc", _PEPPER)

    def test_is_fixed_length_lowercase_hex(self):
        """Digest is 64 lowercase hex characters regardless of input size."""
        for secret in ("", "x", "y" * 10_000):
            assert re.fullmatch(r"[0-9a-f]{64}", hash_secret(secret, _PEPPER))

    def test_pepper_changes_digest(self):
        """A different pepper produces a different digest."""
        assert hash_secret("123456", "a") != hash_secret("123456", "b")


class TestGenerateToken:
    """Tests for generate_token()."""

    def test_is_64_hex_characters(self):
        """Token encodes 32 random bytes as hex."""
        assert re.fullmatch(r"[0-9a-f]{64}", generate_token())

    def test_tokens_are_unique(self):
        """Consecutive tokens do not repeat."""
        assert len({generate_token() for _ in range(100)}) == 100


class TestGeneratePasscode:
    """Tests for generate_passcode()."""

    def test_is_six_digits(self):
        """Passcodes are always six digits, zero padded."""
        for _ in range(500):
            assert re.fullmatch(r"\d{6}", generate_passcode())

    def test_zero_padding(self, monkeypatch):
        """Small draws are left padded with zeros."""
        monkeypatch.setattr("app.core.hashing.secrets.randbelow", lambda _n: 42)
        assert generate_passcode() == "000042"

    def test_draws_from_full_range(self, monkeypatch):
        """The draw covers 000000-999999 exactly."""
        bounds: list[int] = []

        def fake_randbelow(n: int) -> int:
            bounds.append(n)
            return n - 1

        monkeypatch.setattr("app.core.hashing.secrets.randbelow", fake_randbelow)
        assert generate_passcode() == "999999"
        assert bounds == [1_000_000]


class TestSecretsMatch:
    """Tests for secrets_match()."""

    def test_equal_values_match(self):
        assert secrets_match("abc", "abc") is True

    def test_different_values_do_not_match(self):
        assert secrets_match("abc", "abd") is False

    def test_different_lengths_do_not_match(self):
        assert secrets_match("abc", "abcd") is False
