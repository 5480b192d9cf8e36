"""Slug derivation, space key validation and sibling positions."""

from __future__ import annotations

import re
from typing import Iterable

from ..errors import ValidationError

SPACE_KEY_PATTERN = re.compile(r"^[A-Z][A-Z0-9]{1,9}$")

# Titles that reduce to nothing (all punctuation, non-latin script) still get
# a usable slug.
FALLBACK_SLUG = "untitled"

_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_DASHES = re.compile(r"-+")


def generate_slug(title: str) -> str:
    """Derive a URL slug from a page title.

    Lowercases, strips everything outside ``[a-z0-9]``, whitespace and ``-``,
    turns whitespace runs into ``-``, collapses repeated ``-`` and trims
    dashes from both ends. The result always matches
    ``[a-z0-9]+(-[a-z0-9]+)*`` and feeding it back in returns it unchanged.

    Example:
        generate_slug("Hello,  World!") == "hello-world"
    """
    slug = _DISALLOWED.sub("", title.lower())
    slug = _WHITESPACE.sub("-", slug)
    slug = _DASHES.sub("-", slug)
    slug = slug.strip("-")
    return slug or FALLBACK_SLUG


def next_position(sibling_positions: Iterable[int]) -> int:
    """Position for a new last sibling: max + 1, or 0 when there are none."""
    return max(sibling_positions, default=-1) + 1


def normalize_space_key(key: str) -> str:
    """Uppercase and validate a space key.

    Raises:
        ValidationError: If the key is not a letter followed by 1-9 letters or digits.
    """
    normalized = (key or "").strip().upper()
    if not SPACE_KEY_PATTERN.match(normalized):
        raise ValidationError(
            "Space key must be 2-10 characters, start with a letter and contain only letters and digits",
            field="key",
            value=key,
            constraint=SPACE_KEY_PATTERN.pattern,
        )
    return normalized
