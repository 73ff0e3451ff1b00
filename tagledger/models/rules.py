"""Models for LLM-proposed correction rules."""
from typing import List, Optional

from pydantic import Field

from tagledger.models.base import TLBaseModel
from tagledger.models.corrections import MatchType


class TransactionSample(TLBaseModel):
    """A transaction shown to the rule proposer."""
    description: str = Field(..., min_length=1)
    entity_name: Optional[str] = None
    amount: float = 0.0
    account: str = ""
    current_tags: List[str] = Field(default_factory=list)


class ProposedRule(TLBaseModel):
    """A candidate rule. Not persisted until confirmed via create_or_update."""
    pattern: str = Field(..., min_length=1)
    match_type: MatchType = MatchType.CONTAINS
    tags: List[str] = Field(default_factory=list)
    reasoning: str = ""
