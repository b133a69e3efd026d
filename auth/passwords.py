"""
auth/passwords.py -- bcrypt password hashing.

Security design decisions:
  Cost: new hashes are always produced at the configured cost (12 in
       production). bcrypt embeds the cost in the hash string, so verify()
       accepts older hashes -- the cost-10 records written by the plaintext
       migration keep working. No rehash-on-login happens.

  Direct bcrypt usage (no passlib wrapper): passlib's wrap-bug detection
       feeds bcrypt 4.x a >72 byte password, which it now rejects.

  72-byte limit: bcrypt only reads the first 72 bytes of its input. Silently
       cutting longer passwords would make every password sharing a 72-byte
       prefix interchangeable, so hash() refuses them and verify() never
       reports a match for them. The API rejects them at registration and
       reset (api/models.check_password_policy).

  Timing equalization [C1]: dummy_hash is computed once per hasher, at
       construction and at the same cost, so AuthService can run a full bcrypt
       check when the email is unknown and response time does not reveal
       whether an account exists.

Layer rule: no imports from api/ or mail/.
"""

from __future__ import annotations

import logging

import bcrypt

logger = logging.getLogger("storefront.auth.passwords")

DEFAULT_ROUNDS = 12
LEGACY_ROUNDS = 10
MAX_PASSWORD_BYTES = 72

_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")
_DUMMY_PASSWORD = "storefront_timing_dummy"


def is_bcrypt_hash(value: str | None) -> bool:
    """True if value looks like a bcrypt hash rather than a stored plaintext."""
    return bool(value) and value.startswith(_BCRYPT_PREFIXES) and len(value) == 60


def fits_bcrypt(plaintext: str) -> bool:
    """True if the UTF-8 encoding of plaintext is within bcrypt's 72-byte input."""
    return len(plaintext.encode("utf-8")) <= MAX_PASSWORD_BYTES


class PasswordHasher:
    """Hash and verify passwords with a fixed bcrypt cost.

    Usage:
        hasher = PasswordHasher(rounds=12)
        stored = hasher.hash("Abc12345!")
        hasher.verify("Abc12345!", stored)  # True
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        self.rounds = rounds
        # Built up front so the first unknown-email login costs the same as
        # every later one.
        self._dummy_hash = self.hash(_DUMMY_PASSWORD)

    def hash(self, plaintext: str) -> str:
        """Return a salted bcrypt hash of plaintext.

        Raises:
            ValueError: plaintext encodes to more than 72 bytes.
        """
        if not fits_bcrypt(plaintext):
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        return bcrypt.hashpw(plaintext.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plaintext: str, hashed: str) -> bool:
        """Return True only if plaintext matches hashed.

        A stored value that is not a bcrypt hash (corrupt row, unmigrated
        plaintext) or a plaintext longer than 72 bytes is checked against the
        dummy hash so the call still costs one full bcrypt round, then
        reported as a mismatch.
        """
        if not is_bcrypt_hash(hashed):
            logger.warning("Stored password is not a bcrypt hash; treating as mismatch")
            self.burn(plaintext)
            return False
        if not fits_bcrypt(plaintext):
            self.burn(plaintext)
            return False
        return self._check(plaintext.encode("utf-8"), hashed)

    @property
    def dummy_hash(self) -> str:
        return self._dummy_hash

    def burn(self, plaintext: str) -> None:
        """Spend one bcrypt verification without a real hash to compare against [C1]."""
        self._check(plaintext.encode("utf-8")[:MAX_PASSWORD_BYTES], self._dummy_hash)

    @staticmethod
    def _check(secret: bytes, hashed: str) -> bool:
        try:
            return bcrypt.checkpw(secret, hashed.encode("utf-8"))
        except ValueError:
            # bcrypt raises ValueError for a syntactically broken salt.
            return False
