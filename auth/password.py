"""Salted one-way password hashing.

Stored form is ``salt:digest`` (both hex). The primitive is pluggable: the
session manager only depends on the ``PasswordHasher`` protocol.
"""

import hashlib
import hmac
import secrets
from typing import Protocol

SALT_BYTES = 16


class PasswordHasher(Protocol):
    """Anything that can hash and verify passwords."""

    def hash(self, plaintext: str) -> str: ...

    def verify(self, plaintext: str, stored: str) -> bool: ...


class SaltedPasswordHasher:
    """
    Digest of ``plaintext + salt`` with a fresh random salt per hash.

    With ``iterations == 1`` this is a single salted digest; anything higher
    runs PBKDF2-HMAC with the same algorithm.
    """

    def __init__(self, algorithm: str = "sha256", iterations: int = 1):
        if algorithm not in hashlib.algorithms_available:
            raise ValueError(f"Unsupported hash algorithm: {algorithm}")
        if iterations < 1:
            raise ValueError("iterations must be >= 1")
        self._algorithm = algorithm
        self._iterations = iterations

    def _digest(self, plaintext: str, salt: str) -> str:
        if self._iterations == 1:
            return hashlib.new(self._algorithm, (plaintext + salt).encode("utf-8")).hexdigest()
        return hashlib.pbkdf2_hmac(
            self._algorithm,
            plaintext.encode("utf-8"),
            salt.encode("utf-8"),
            self._iterations,
        ).hex()

    def hash(self, plaintext: str) -> str:
        """Hash with a new salt. Returns ``salt:digest``."""
        salt = secrets.token_hex(SALT_BYTES)
        return f"{salt}:{self._digest(plaintext, salt)}"

    def verify(self, plaintext: str, stored: str) -> bool:
        """
        Recompute with the stored salt and compare in constant time.

        Malformed stored values never match.
        """
        salt, sep, expected = stored.partition(":")
        if not sep or not salt or not expected:
            return False
        actual = self._digest(plaintext, salt)
        return hmac.compare_digest(actual.encode("ascii"), expected.encode("ascii", "replace"))
