"""API request models."""
from typing import List, Optional

from pydantic import ConfigDict, Field

from tagledger.models.base import TLBaseModel
from tagledger.models.corrections import MatchType, TransactionType
from tagledger.models.rules import TransactionSample


class CreateCorrectionRequest(TLBaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=False)

    pattern: str = Field(..., min_length=1)
    match_type: MatchType = MatchType.EXACT
    tags: List[str] = Field(default_factory=list)
    entity_id: Optional[str] = None
    entity_name: Optional[str] = None
    location: Optional[str] = None
    online: Optional[bool] = None
    transaction_type: Optional[TransactionType] = None


class UpdateCorrectionRequest(TLBaseModel):
    """Partial edit. Only fields present in the request body are applied."""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=False)

    tags: Optional[List[str]] = None
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    entity_id: Optional[str] = None
    entity_name: Optional[str] = None
    location: Optional[str] = None
    online: Optional[bool] = None
    transaction_type: Optional[TransactionType] = None


class FindMatchRequest(TLBaseModel):
    """The description is matched as sent; only its case is folded."""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=False)

    description: str = Field(..., min_length=1)
    min_confidence: Optional[float] = Field(default=None, ge=0, le=1)


class AdjustConfidenceRequest(TLBaseModel):
    delta: float = Field(..., ge=-1, le=1)


class ProposeRulesRequest(TLBaseModel):
    transactions: List[TransactionSample] = Field(..., min_length=1)
