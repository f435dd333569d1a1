"""
Access-code hashing and constant-time verification (bcrypt).
"""
from typing import Optional, Protocol

import bcrypt

from quizgate.core.config import settings


class SecretComparator(Protocol):
    def matches(self, submitted: Optional[str], stored_hash: Optional[str]) -> bool: ...


def hash_access_code(code: str, rounds: Optional[int] = None) -> str:
    salt = bcrypt.gensalt(rounds=rounds or settings.ACCESS_CODE_BCRYPT_ROUNDS)
    return bcrypt.hashpw(code.strip().encode("utf-8"), salt).decode("ascii")


class BcryptComparator:
    """Compares a submitted code against a bcrypt hash."""

    def matches(self, submitted: Optional[str], stored_hash: Optional[str]) -> bool:
        if not submitted or not submitted.strip() or not stored_hash:
            return False
        try:
            return bcrypt.checkpw(submitted.strip().encode("utf-8"), stored_hash.encode("ascii"))
        except ValueError:
            # malformed stored hash or over-long input
            return False
