"""
core/text.py - Question normalization and tokenization
======================================================

Shared by the answer cache (normalized keys), the FAQ matcher and keyword
retrieval, so all three agree on what counts as "the same words".
"""

import re

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")

# Shorter tokens are ignored ("is", "of", "a", ...)
MIN_TOKEN_LENGTH = 3


def normalize_text(value: str) -> str:
    """
    Lowercase, replace punctuation with spaces, collapse whitespace.

    >>> normalize_text("  What is PCOS?? ")
    'what is pcos'
    """
    lowered = str(value or "").lower()
    return _WHITESPACE.sub(" ", _NON_ALNUM.sub(" ", lowered)).strip()


def tokenize(value: str) -> list[str]:
    """Split normalized text into tokens longer than two characters."""
    return [t for t in normalize_text(value).split(" ") if len(t) >= MIN_TOKEN_LENGTH]


def token_set(value: str) -> set[str]:
    return set(tokenize(value))
