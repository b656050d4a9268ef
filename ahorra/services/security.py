"""
Password Hashing

DESIGN DECISION: Passwords are stored as bcrypt hashes, never verbatim.
The external contract is unchanged: 6 to 50 characters on input and the
same mismatch errors.

bcrypt only reads the first 72 bytes of its input, and a 50 character
password can exceed that in UTF-8. Passwords are therefore reduced to a
SHA-256 digest (base64, 44 bytes) before bcrypt sees them.
"""

import base64
import hashlib
from typing import Optional

import bcrypt

from ahorra.config import get_settings


class PasswordHasher:
    """Hash and verify passwords with bcrypt."""

    def __init__(self, rounds: Optional[int] = None):
        self._rounds = rounds or get_settings().app.bcrypt_rounds

    @staticmethod
    def _prehash(password: str) -> bytes:
        digest = hashlib.sha256(password.encode("utf-8")).digest()
        return base64.b64encode(digest)

    def hash(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self._rounds)
        return bcrypt.hashpw(self._prehash(password), salt).decode("utf-8")

    def verify(self, password: str, hashed: str) -> bool:
        try:
            return bcrypt.checkpw(self._prehash(password), hashed.encode("utf-8"))
        except ValueError:
            # Not a bcrypt hash
            return False
