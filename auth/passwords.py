"""
auth/passwords.py -- One-way salted password hashing with bcrypt.

bcrypt is used directly rather than through passlib: passlib's wrap-bug
detection builds a password longer than 72 bytes, which current bcrypt
releases reject with an explicit error.

Every hash() call draws a fresh salt, so hashing the same plaintext twice
gives two different strings that both verify. verify() never raises: a
malformed or foreign hash string is simply a non-match.

Layer rule: no imports from api/, core/ or resources/.
"""

from __future__ import annotations

import bcrypt

# bcrypt only looks at the first 72 bytes of its input, and bcrypt>=5 refuses
# longer inputs outright. The HTTP layer rejects longer passwords up front.
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """bcrypt hashing with a configurable cost factor.

    Usage:
        hasher = PasswordHasher(rounds=10)
        stored = hasher.hash("s3cret")
        hasher.verify("s3cret", stored)   # True
    """

    def __init__(self, rounds: int = 10) -> None:
        self.rounds = rounds
        self._dummy_hash: str | None = None

    def hash(self, plain: str) -> str:
        """Return a bcrypt hash of the plaintext using a fresh salt."""
        return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if the plaintext matches the hash. False on any malformed input."""
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except (ValueError, TypeError, AttributeError):
            return False

    def burn(self, plain: str) -> None:
        """Run one verification against a throwaway hash of the same cost.

        Called when the account does not exist so that an unknown email takes
        as long to reject as a wrong password. The dummy hash is built on first
        use and reused afterwards.
        """
        if self._dummy_hash is None:
            self._dummy_hash = self.hash("authgate_timing_dummy")
        self.verify(plain, self._dummy_hash)
