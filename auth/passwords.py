"""
auth/passwords.py -- Salted one-way password hashing (bcrypt).

bcrypt directly, no passlib wrapper. The salt is produced by bcrypt.gensalt(),
which draws from os.urandom, and is stored next to the digest so verification
recomputes the digest from (plaintext, salt) and compares the two with
hmac.compare_digest. The comparison time does not depend on where the digests
differ.

bcrypt ignores everything past 72 bytes of input (bcrypt >= 5 raises instead),
so callers reject longer passwords at registration; MAX_PASSWORD_BYTES is the
limit they check against.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

import hmac

import bcrypt

MAX_PASSWORD_BYTES = 72
DEFAULT_ROUNDS = 12


class PasswordHasher:
    """Hash and verify local passwords.

    rounds is the bcrypt cost factor (log2 of the iteration count). Tests use
    the minimum (4) to keep the suite fast.
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        self.rounds = rounds

    def hash(self, plaintext: str) -> tuple[bytes, bytes]:
        """Return (digest, salt) for plaintext. A fresh salt is generated per call."""
        salt = bcrypt.gensalt(rounds=self.rounds)
        digest = bcrypt.hashpw(plaintext.encode("utf-8"), salt)
        return digest, salt

    def verify(self, plaintext: str, digest: bytes, salt: bytes) -> bool:
        """Return True if plaintext hashes to digest under salt.

        Malformed salts and over-long inputs return False rather than raising,
        so a login attempt can never turn into a 500.
        """
        try:
            candidate = bcrypt.hashpw(plaintext.encode("utf-8"), salt)
        except ValueError:
            return False
        return hmac.compare_digest(candidate, digest)
