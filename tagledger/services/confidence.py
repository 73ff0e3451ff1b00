"""
Confidence lifecycle for learned corrections.

Rules start at INITIAL_CONFIDENCE, gain REINFORCEMENT_STEP every time the
same pattern is taught again, and move by arbitrary deltas on user feedback.
Feedback that leaves a rule strictly below PRUNE_THRESHOLD removes it.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from tagledger.models.corrections import Correction
from tagledger.services.errors import ValidationFailure

INITIAL_CONFIDENCE = 0.5
REINFORCEMENT_STEP = 0.1
PRUNE_THRESHOLD = 0.3
MIN_CONFIDENCE = 0.0
MAX_CONFIDENCE = 1.0

# Stored values only; pruning compares the unrounded result
_PRECISION = 10


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _bounded(value: float) -> float:
    if value is None or not math.isfinite(value):
        raise ValidationFailure("confidence", f"Confidence must be a finite number, got {value!r}")
    return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, float(value)))


def clamp_confidence(value: float) -> float:
    """Clamp a confidence value into [0, 1], rounded for storage."""
    return round(_bounded(value), _PRECISION)


@dataclass(frozen=True)
class Adjustment:
    """Result of applying feedback to a rule."""
    rule: Optional[Correction]
    pruned: bool


def reinforce(rule: Correction, now: Optional[datetime] = None) -> Correction:
    """The same pattern was taught again: bump confidence and usage count."""
    now = now or _now()
    return rule.model_copy(
        update={
            "confidence": clamp_confidence(rule.confidence + REINFORCEMENT_STEP),
            "times_applied": rule.times_applied + 1,
            "last_used_at": now,
            "updated_at": now,
        }
    )


def adjust(rule: Correction, delta: float, now: Optional[datetime] = None) -> Adjustment:
    """
    Apply feedback to a rule.

    Returns ``Adjustment(None, pruned=True)`` when the clamped result falls
    strictly below PRUNE_THRESHOLD. ``times_applied`` is never touched here.
    """
    if delta is None or not math.isfinite(delta):
        raise ValidationFailure("delta", f"Delta must be a finite number, got {delta!r}")

    raw = _bounded(rule.confidence + delta)
    if raw < PRUNE_THRESHOLD:
        return Adjustment(rule=None, pruned=True)

    updated = rule.model_copy(
        update={
            "confidence": round(raw, _PRECISION),
            "updated_at": now or _now(),
        }
    )
    return Adjustment(rule=updated, pruned=False)
