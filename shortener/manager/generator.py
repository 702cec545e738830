"""
Short-code generation for the shortener.

Provided generators:
- RandomGenerator: uniform random Base62 code of a fixed length (default 8)

Notes:
- 62 symbols at length 8 give ~2.1e14 codes; collisions are rare but possible,
  so uniqueness is enforced by the storage backend (detect + retry), not here.
- The random source is injected. Pass a seeded `random.Random` for
  reproducible codes in tests; the default is a fresh `random.SystemRandom`.
"""

import random
from abc import ABC, abstractmethod
from typing import Optional

BASE62_ALPHABET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
DEFAULT_CODE_LENGTH = 8


class BaseGenerator(ABC):
    """Abstract base for code generators."""

    @abstractmethod
    def generate(self, length: Optional[int] = None) -> str:
        raise NotImplementedError


class RandomGenerator(BaseGenerator):
    """Random Base62 codes; relies on storage-level uniqueness checks."""

    def __init__(self, rng: Optional[random.Random] = None, length: int = DEFAULT_CODE_LENGTH) -> None:
        if length < 1:
            raise ValueError("length must be positive")
        self.rng = rng or random.SystemRandom()
        self.length = length

    def generate(self, length: Optional[int] = None) -> str:
        n = self.length if length is None else length
        if n < 1:
            raise ValueError("length must be positive")
        return "".join(self.rng.choice(BASE62_ALPHABET) for _ in range(n))
