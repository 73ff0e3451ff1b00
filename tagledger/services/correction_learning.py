"""
Correction Learning Service

When users correct how a transaction was tagged, learn a rule from that
correction so future imports of the same merchant are tagged automatically.

- create_or_update teaches a pattern (and reinforces it if already known)
- find_match classifies a live description during import
- adjust_confidence applies accept/override feedback, pruning bad rules

The service holds no state of its own; everything lives in the injected
CorrectionBackend.
"""
from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

from tagledger.models.corrections import (
    AdjustmentResult,
    Correction,
    CorrectionPage,
    MatchType,
    Pagination,
    TransactionType,
)
from tagledger.services import confidence as lifecycle
from tagledger.services.errors import NotFoundError, ValidationFailure, WriteConflict
from tagledger.services.matching import find_match, rank_matches
from tagledger.services.logging import log_correction_event
from tagledger.services.metrics import record_correction_event
from tagledger.services.normalizer import normalize
from tagledger.services.pattern_store import CorrectionBackend

logger = logging.getLogger(__name__)

WRITE_RETRIES = int(os.getenv("TAGLEDGER_WRITE_RETRIES", "5"))

_ASSOCIATION_FIELDS = ("entity_id", "entity_name", "location", "online", "transaction_type")
_UPDATABLE_FIELDS = ("tags", "confidence") + _ASSOCIATION_FIELDS

T = TypeVar("T")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


class CorrectionLearningService:
    """
    Learns tagging rules from user corrections.

    Usage:
        service = CorrectionLearningService(SQLPatternStore("corrections.db"))

        # Teach a pattern
        rule = service.create_or_update("WOOLWORTHS 1234", "contains", ["Groceries"])

        # Classify during import
        match = service.find_match("WOOLWORTHS SUPERMARKETS AU", min_confidence=0.7)
        if match:
            print(f"Suggested tags: {match.tags} ({match.confidence:.0%})")

        # User overrode the suggestion
        service.adjust_confidence(rule.id, -0.2)
    """

    def __init__(self, store: CorrectionBackend, write_retries: int = WRITE_RETRIES):
        self.store = store
        self.write_retries = max(1, write_retries)

    # ------------------------------------------------------------------
    # Teaching
    # ------------------------------------------------------------------

    def create_or_update(
        self,
        pattern: str,
        match_type: MatchType | str,
        tags: Iterable[str],
        entity_id: Optional[str] = None,
        entity_name: Optional[str] = None,
        location: Optional[str] = None,
        online: Optional[bool] = None,
        transaction_type: Optional[TransactionType | str] = None,
    ) -> Correction:
        """
        Teach a pattern.

        A new (pattern, match_type) pair is stored at the initial confidence.
        A known pair has its tags and associations replaced and is reinforced.
        """
        normalized = normalize(pattern)
        if not normalized:
            raise ValidationFailure("pattern", f"Pattern {pattern!r} is empty after normalization")
        match_type = _coerce_match_type(match_type)
        fields: Dict[str, Any] = {
            "tags": _coerce_tags(tags),
            "entity_id": entity_id,
            "entity_name": entity_name,
            "location": location,
            "online": online,
            "transaction_type": _coerce_transaction_type(transaction_type),
        }

        def attempt() -> Correction:
            existing = self.store.find(normalized, match_type)
            if existing is None:
                now = _now()
                rule = Correction(
                    id=_new_id(),
                    pattern=normalized,
                    match_type=match_type,
                    confidence=lifecycle.INITIAL_CONFIDENCE,
                    times_applied=0,
                    created_at=now,
                    updated_at=now,
                    **fields,
                )
                stored = self.store.put(rule)
                record_correction_event("created")
                log_correction_event(
                    "created",
                    stored.id,
                    f"Learned correction {stored.id}: {normalized!r} ({match_type.value}) -> {stored.tags}",
                    pattern=normalized,
                    match_type=match_type.value,
                )
                return stored

            reinforced = lifecycle.reinforce(existing.model_copy(update=fields))
            stored = self.store.put(reinforced, expected_version=existing.version)
            record_correction_event("reinforced")
            log_correction_event(
                "reinforced",
                stored.id,
                f"Reinforced correction {stored.id}: {normalized!r} "
                f"confidence={stored.confidence:.2f} times_applied={stored.times_applied}",
                confidence=stored.confidence,
                times_applied=stored.times_applied,
            )
            return stored

        return self._with_retries(f"{match_type.value}:{normalized}", attempt)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_match(self, description: str, min_confidence: float = 0.0) -> Optional[Correction]:
        """Best rule for a live description, or None. Never writes."""
        match = find_match(self.store.scan(), description, min_confidence)
        if match is None:
            record_correction_event("match_miss")
            logger.debug(f"No correction matched {description!r} (min_confidence={min_confidence})")
        else:
            record_correction_event("match_hit")
        return match

    def rank_matches(self, description: str, min_confidence: float = 0.0) -> List[Correction]:
        """Every rule that applies to a description, best first."""
        return rank_matches(self.store.scan(), description, min_confidence)

    def get(self, correction_id: str) -> Correction:
        rule = self.store.get(correction_id)
        if rule is None:
            raise NotFoundError("Correction", correction_id)
        return rule

    def list(
        self,
        min_confidence: Optional[float] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> CorrectionPage:
        """
        Rules with confidence >= min_confidence, most trusted first.

        ``total`` counts every matching rule regardless of limit/offset.
        """
        if limit is not None and limit < 0:
            raise ValidationFailure("limit", "Limit must not be negative")
        if offset < 0:
            raise ValidationFailure("offset", "Offset must not be negative")

        threshold = 0.0 if min_confidence is None else min_confidence
        rows = self.store.scan(lambda rule: rule.confidence >= threshold)
        rows.sort(key=lambda rule: (-rule.confidence, -rule.times_applied, rule.id))

        total = len(rows)
        page = rows[offset:] if limit is None else rows[offset:offset + limit]
        return CorrectionPage(
            data=page,
            pagination=Pagination(
                total=total,
                limit=limit,
                offset=offset,
                has_more=offset + len(page) < total,
            ),
        )

    # ------------------------------------------------------------------
    # Direct edits and feedback
    # ------------------------------------------------------------------

    def update(self, correction_id: str, **changes: Any) -> Correction:
        """
        Edit fields directly, bypassing reinforcement and pruning.

        Only the keyword arguments given are applied; pass ``None`` to clear
        an optional association. Confidence is clamped but never pruned.
        """
        unknown = sorted(set(changes) - set(_UPDATABLE_FIELDS))
        if unknown:
            raise ValidationFailure(unknown[0], f"Field cannot be updated: {', '.join(unknown)}")

        updates: Dict[str, Any] = {}
        if "tags" in changes:
            updates["tags"] = _coerce_tags(changes["tags"])
        if "confidence" in changes:
            updates["confidence"] = lifecycle.clamp_confidence(changes["confidence"])
        if "transaction_type" in changes:
            updates["transaction_type"] = _coerce_transaction_type(changes["transaction_type"])
        for field in ("entity_id", "entity_name", "location", "online"):
            if field in changes:
                updates[field] = changes[field]

        def attempt() -> Correction:
            existing = self.get(correction_id)
            if not updates:
                return existing
            edited = existing.model_copy(update={**updates, "updated_at": _now()})
            stored = self.store.put(edited, expected_version=existing.version)
            record_correction_event("updated")
            log_correction_event(
                "updated", correction_id, f"Updated correction {correction_id}: {sorted(updates)}",
                fields=sorted(updates),
            )
            return stored

        return self._with_retries(correction_id, attempt)

    def adjust_confidence(self, correction_id: str, delta: float) -> AdjustmentResult:
        """
        Apply feedback to a rule in one step.

        Positive delta when a suggestion was accepted, negative when it was
        overridden. A rule left below the prune threshold is deleted.
        """
        def attempt() -> AdjustmentResult:
            existing = self.get(correction_id)
            outcome = lifecycle.adjust(existing, delta)

            if outcome.pruned:
                if not self.store.delete(correction_id, expected_version=existing.version):
                    raise NotFoundError("Correction", correction_id)
                record_correction_event("pruned")
                log_correction_event(
                    "pruned",
                    correction_id,
                    f"Pruned correction {correction_id} ({existing.pattern!r}): "
                    f"confidence {existing.confidence:.2f} {delta:+.2f} fell below "
                    f"{lifecycle.PRUNE_THRESHOLD}",
                    pattern=existing.pattern,
                )
                return AdjustmentResult(status="pruned", correction_id=correction_id)

            stored = self.store.put(outcome.rule, expected_version=existing.version)
            record_correction_event("adjusted")
            return AdjustmentResult(status="updated", correction_id=correction_id, correction=stored)

        return self._with_retries(correction_id, attempt)

    def delete(self, correction_id: str) -> None:
        """Remove a rule. A second delete of the same id raises NotFoundError."""
        if not self.store.delete(correction_id):
            raise NotFoundError("Correction", correction_id)
        record_correction_event("deleted")
        log_correction_event("deleted", correction_id, f"Deleted correction {correction_id}")

    def known_tags(self) -> List[str]:
        """Every distinct tag used by a stored rule, sorted."""
        tags = {tag.strip() for rule in self.store.scan() for tag in rule.tags if tag.strip()}
        return sorted(tags)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _with_retries(self, label: str, operation: Callable[[], T]) -> T:
        """Run a read-modify-write, reloading on WriteConflict."""
        for attempt in range(1, self.write_retries + 1):
            try:
                return operation()
            except WriteConflict:
                if attempt == self.write_retries:
                    raise
                logger.debug(f"Write conflict on {label}, retrying ({attempt}/{self.write_retries})")
        raise WriteConflict(label)  # pragma: no cover


def _coerce_match_type(value: MatchType | str) -> MatchType:
    try:
        return MatchType(value)
    except ValueError:
        allowed = ", ".join(m.value for m in MatchType)
        raise ValidationFailure("match_type", f"Unknown match type {value!r}; expected one of {allowed}")


def _coerce_transaction_type(value: Optional[TransactionType | str]) -> Optional[TransactionType]:
    if value is None:
        return None
    try:
        return TransactionType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in TransactionType)
        raise ValidationFailure(
            "transaction_type", f"Unknown transaction type {value!r}; expected one of {allowed}"
        )


def _coerce_tags(tags: Iterable[str]) -> List[str]:
    if tags is None or isinstance(tags, (str, bytes)):
        raise ValidationFailure("tags", "Tags must be a list of strings")
    tags = list(tags)
    if not all(isinstance(tag, str) for tag in tags):
        raise ValidationFailure("tags", "Tags must be a list of strings")
    return tags
