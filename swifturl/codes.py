"""Short-code generation and validation.

Codes are drawn uniformly from a 62-symbol alphabet with nanoid, which reads
from ``os.urandom``. A generated code is *not* guaranteed unique; callers
check the store and rely on its unique constraint.

Key Behaviours
===============
- 62^6 ≈ 56.8 billion codes at the default length of 6.
- Codes are case-sensitive: ``abc`` and ``ABC`` are different codes.
- Reserved words are refused as custom codes so they never shadow a route.
"""

import re

from nanoid import generate

__all__ = [
    "ALPHABET",
    "DEFAULT_CODE_LENGTH",
    "MAX_CODE_LENGTH",
    "MIN_CODE_LENGTH",
    "RESERVED_CODES",
    "generate_short_code",
    "is_reserved_code",
    "is_valid_short_code",
]

ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
DEFAULT_CODE_LENGTH = 6
MIN_CODE_LENGTH = 3
MAX_CODE_LENGTH = 10

_CODE_PATTERN = re.compile(rf"^[0-9A-Za-z]{{{MIN_CODE_LENGTH},{MAX_CODE_LENGTH}}}$")

RESERVED_CODES = frozenset(
    {
        "api", "admin", "www", "app", "mail", "email", "support", "help",
        "about", "contact", "terms", "privacy", "login", "register", "signup",
        "dashboard", "account", "profile", "settings", "home", "index",
        "health", "status", "metrics", "docs", "redoc", "documentation", "faq",
        "blog", "news", "static", "assets", "cdn", "media", "images",
        "js", "css", "fonts", "favicon", "robots", "sitemap",
    }
)


def generate_short_code(length: int = DEFAULT_CODE_LENGTH) -> str:
    if not isinstance(length, int) or isinstance(length, bool) or length <= 0:
        raise ValueError(f"length must be a positive integer, got {length!r}")
    return generate(ALPHABET, length)


def is_valid_short_code(code: str) -> bool:
    return isinstance(code, str) and bool(_CODE_PATTERN.match(code))


def is_reserved_code(code: str) -> bool:
    return code.lower() in RESERVED_CODES
