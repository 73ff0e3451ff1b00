"""Correction rule models."""
from datetime import datetime
from enum import Enum
from typing import List, Literal, NamedTuple, Optional

from pydantic import ConfigDict, Field

from tagledger.models.base import TLBaseModel


class MatchType(str, Enum):
    """How a stored pattern is compared against a live description."""
    EXACT = "exact"
    CONTAINS = "contains"


class TransactionType(str, Enum):
    PURCHASE = "purchase"
    TRANSFER = "transfer"
    INCOME = "income"


class CorrectionKey(NamedTuple):
    """Dedup key for corrections: one rule per (pattern, match_type)."""
    pattern: str
    match_type: MatchType


class Correction(TLBaseModel):
    """
    A learned rule mapping a normalized description pattern to tags.

    ``version`` is bumped on every persisted write and is what stores use
    for compare-and-swap.
    """

    # Tags are stored exactly as the caller sent them.
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=False)

    id: str = Field(..., min_length=1)
    pattern: str = Field(..., min_length=1)
    match_type: MatchType
    tags: List[str] = Field(default_factory=list)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    times_applied: int = Field(default=0, ge=0)
    entity_id: Optional[str] = None
    entity_name: Optional[str] = None
    location: Optional[str] = None
    online: Optional[bool] = None
    transaction_type: Optional[TransactionType] = None
    created_at: datetime
    updated_at: datetime
    last_used_at: Optional[datetime] = None
    version: int = Field(default=1, ge=1)

    @property
    def key(self) -> CorrectionKey:
        return CorrectionKey(self.pattern, self.match_type)


class Pagination(TLBaseModel):
    total: int = Field(..., ge=0)
    limit: Optional[int] = None
    offset: int = Field(default=0, ge=0)
    has_more: bool = False


class CorrectionPage(TLBaseModel):
    """One page of a correction listing plus the unpaginated total."""
    data: List[Correction] = Field(default_factory=list)
    pagination: Pagination

    @property
    def total(self) -> int:
        return self.pagination.total


class AdjustmentResult(TLBaseModel):
    """Outcome of a confidence adjustment: the rule survived or was pruned."""
    status: Literal["updated", "pruned"]
    correction_id: str
    correction: Optional[Correction] = None

    @property
    def pruned(self) -> bool:
        return self.status == "pruned"
