"""Short code generation and syntax checks.

Codes are drawn from nanoid's URL-safe alphabet using a cryptographically
secure random source, so they are not enumerable. Collisions are possible
(birthday bound) and callers must verify uniqueness against the durable store,
or against the cache for guest links.
"""

import re

from nanoid import generate

__all__ = ["ALPHABET", "SHORT_CODE_PATTERN", "generate_short_code", "is_valid_short_code"]

ALPHABET = "_-0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
SHORT_CODE_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{4,20}$")
DEFAULT_LENGTH = 8


def generate_short_code(length: int = DEFAULT_LENGTH) -> str:
    assert isinstance(length, int) and length > 0, f"length must be a positive integer, got {length!r}"
    return generate(ALPHABET, length)


def is_valid_short_code(code: object) -> bool:
    return isinstance(code, str) and SHORT_CODE_PATTERN.fullmatch(code) is not None
