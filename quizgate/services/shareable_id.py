"""
Short, human-typeable quiz codes.

Codes are 8 characters over a 32-symbol alphabet without the look-alike
glyphs 0/O and 1/I, giving 32**8 (about 2.8e12) possible codes. `is_valid`
checks shape only; uniqueness must be checked against storage.
"""
import logging
import secrets
from random import Random
from typing import Callable, Optional

from quizgate.core.errors import ShareableIdExhausted

logger = logging.getLogger(__name__)

ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 8


class ShareableIdGenerator:
    def __init__(self, random_source: Optional[Random] = None):
        self._random = random_source or secrets.SystemRandom()

    def generate(self) -> str:
        return "".join(self._random.choice(ALPHABET) for _ in range(CODE_LENGTH))

    @staticmethod
    def is_valid(code: Optional[str]) -> bool:
        if not isinstance(code, str) or len(code) != CODE_LENGTH:
            return False
        return all(c in ALPHABET for c in code)

    def generate_unique(self, exists: Callable[[str], bool], max_tries: int = 10) -> str:
        """Generate a code that `exists` reports as unused."""
        for attempt in range(1, max_tries + 1):
            code = self.generate()
            if not exists(code):
                return code
            logger.warning(f"Shareable id collision on try {attempt}")
        raise ShareableIdExhausted(max_tries)
