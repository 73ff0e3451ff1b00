"""
Match engine for learned corrections.

Decides whether a stored rule applies to a live transaction description and
ranks competing rules:

1. ``exact`` rules outrank ``contains`` rules
2. higher confidence wins within a match type
3. the most recently updated rule wins on a confidence tie
4. lowest id as the final tie-break, so the result only depends on the
   candidate set and not on scan order
"""
from __future__ import annotations

from typing import Iterable, List, Optional

from tagledger.models.corrections import Correction, MatchType


_MATCH_TYPE_RANK = {
    MatchType.EXACT: 0,
    MatchType.CONTAINS: 1,
}


def is_match(rule: Correction, description: str) -> bool:
    """
    Check a rule against a live description.

    Only the case is folded on the live side. Digits are kept, so a
    ``contains`` pattern simply skips over store numbers in the description.
    """
    candidate = (description or "").upper()
    if rule.match_type == MatchType.EXACT:
        return candidate == rule.pattern
    if rule.match_type == MatchType.CONTAINS:
        return rule.pattern in candidate
    return False


def _precedence(rule: Correction):
    # Sort ascending: exact first, then confidence desc, updated_at desc, id asc
    return (
        _MATCH_TYPE_RANK[rule.match_type],
        -rule.confidence,
        -rule.updated_at.timestamp(),
        rule.id,
    )


def rank_matches(
    candidates: Iterable[Correction],
    description: str,
    min_confidence: float = 0.0,
) -> List[Correction]:
    """Return every applicable rule, best first."""
    matches = [
        rule for rule in candidates
        if rule.confidence >= min_confidence and is_match(rule, description)
    ]
    matches.sort(key=_precedence)
    return matches


def find_match(
    candidates: Iterable[Correction],
    description: str,
    min_confidence: float = 0.0,
) -> Optional[Correction]:
    """Return the winning rule for a description, or None when nothing applies."""
    ranked = rank_matches(candidates, description, min_confidence)
    return ranked[0] if ranked else None
