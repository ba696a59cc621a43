"""Product name normalization and comparison key derivation."""

import re

KEY_SEPARATOR = "-vs-"

# Anything that is not a letter, digit, whitespace or hyphen. \w admits "_", so it is listed explicitly.
_STRIP_PATTERN = re.compile(r"[^\w\s-]|_")
_WHITESPACE_PATTERN = re.compile(r"\s+")
_HYPHEN_RUN_PATTERN = re.compile(r"-{2,}")


def normalize(name: str) -> str:
    """
    Turn a free-text product name into a slug.

    "iPhone 15 Pro!" and "iphone   15 pro" both become "iphone-15-pro".
    Returns an empty string when the input has no letters or digits; callers
    decide whether that is an error.
    """
    if not name:
        return ""
    slug = _STRIP_PATTERN.sub("", name.lower())
    slug = _WHITESPACE_PATTERN.sub("-", slug)
    slug = _HYPHEN_RUN_PATTERN.sub("-", slug)
    return slug.strip("-")


def comparison_key(name1: str, name2: str) -> str:
    """Order-sensitive key naming the comparison of name1 against name2."""
    return f"{normalize(name1)}{KEY_SEPARATOR}{normalize(name2)}"
