"""Secret hashing and generation for case links.

Tokens and passcodes are persisted only as peppered SHA-256 digests. The
pepper lives in server configuration and never in the database, so a leaked
``case_links`` table cannot be brute-forced offline (a six digit passcode
has only 10^6 candidates).
"""

import hashlib
import hmac
import secrets

# 32 bytes = 256 bits of entropy, hex encoded to 64 characters
_TOKEN_BYTES = 32

_PASSCODE_SPACE = 1_000_000
_PASSCODE_DIGITS = 6


def hash_secret(secret: str, pepper: str) -> str:
    """Hash a secret with the server pepper.

    Args:
        secret: Raw token or passcode.
        pepper: Server-held pepper, prepended to the secret.

    Returns:
        Lowercase hex SHA-256 digest (64 characters).
    """
    return hashlib.sha256((pepper + secret).encode("utf-8")).hexdigest()


def generate_token() -> str:
    """Generate a random link token (64 hex characters)."""
    return secrets.token_hex(_TOKEN_BYTES)


def generate_passcode() -> str:
    """Generate a uniformly distributed six digit passcode.

    ``secrets.randbelow`` draws with rejection sampling, so every value in
    000000-999999 is equally likely.
    """
    return str(secrets.randbelow(_PASSCODE_SPACE)).zfill(_PASSCODE_DIGITS)


def secrets_match(supplied: str, expected: str) -> bool:
    """Compare two secrets or digests in constant time."""
    return hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))
