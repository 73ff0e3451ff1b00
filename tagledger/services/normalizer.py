"""
Pattern normalization for learned corrections.

Stored patterns are compared in a canonical form so that the same merchant
seen with different store numbers or casing collapses to one rule:

    "woolworths 1234"      -> "WOOLWORTHS"
    "  Uber   Eats 99 "    -> "UBER EATS"
"""
import re
from typing import Optional

_DIGITS = re.compile(r"[0-9]")
_WHITESPACE = re.compile(r"\s+")


def normalize(raw: Optional[str]) -> str:
    """
    Return the canonical pattern key for a raw description.

    Digits are stripped before trimming so a trailing store number cannot
    leave trailing whitespace behind. Idempotent.
    """
    if not raw:
        return ""
    without_digits = _DIGITS.sub("", raw)
    return _WHITESPACE.sub(" ", without_digits.upper().strip())
