from tagledger.models.base import TLBaseModel
from tagledger.models.corrections import (
    AdjustmentResult,
    Correction,
    CorrectionKey,
    CorrectionPage,
    MatchType,
    Pagination,
    TransactionType,
)
from tagledger.models.rules import ProposedRule, TransactionSample
from tagledger.models.requests import (
    AdjustConfidenceRequest,
    CreateCorrectionRequest,
    FindMatchRequest,
    ProposeRulesRequest,
    UpdateCorrectionRequest,
)

__all__ = [
    "AdjustConfidenceRequest",
    "AdjustmentResult",
    "Correction",
    "CorrectionKey",
    "CorrectionPage",
    "CreateCorrectionRequest",
    "FindMatchRequest",
    "MatchType",
    "Pagination",
    "ProposeRulesRequest",
    "ProposedRule",
    "TLBaseModel",
    "TransactionSample",
    "TransactionType",
    "UpdateCorrectionRequest",
]
