"""
auth/passwords.py -- bcrypt adapter for password hashing and verification.

Using bcrypt directly rather than passlib[bcrypt]: passlib's wrap-bug
detection builds a password longer than 72 bytes, which bcrypt 4.x rejects
with an explicit error.

The work factor is injected (Settings.bcrypt_rounds, 10..15) so deployments
can raise it as hardware gets faster. bcrypt.checkpw compares in constant
time. Plaintext passwords are never logged or returned.
"""

from __future__ import annotations

import bcrypt

# bcrypt only looks at the first 72 bytes. Registration and the admin CLI reject
# longer passwords, so truncation here never merges two distinct passwords.
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """Salted one-way hashing with a tunable cost factor.

    Usage:
        hasher = PasswordHasher(rounds=12)
        digest = hasher.hash("Abcd1234")
        hasher.verify("Abcd1234", digest)   # True
    """

    def __init__(self, rounds: int = 10) -> None:
        self.rounds = rounds
        # Computed once so an unknown-email login costs the same as a real one.
        self._dummy_hash = self.hash("marketplace_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a bcrypt hash of the plaintext with a fresh random salt."""
        pw_bytes = plain.encode("utf-8")[:MAX_PASSWORD_BYTES]
        return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if the plaintext matches the hash. Malformed hashes verify False."""
        pw_bytes = plain.encode("utf-8")[:MAX_PASSWORD_BYTES]
        try:
            return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    def verify_dummy(self, plain: str) -> None:
        """Burn one verification against the dummy hash; result is discarded."""
        self.verify(plain, self._dummy_hash)
