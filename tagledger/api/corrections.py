"""Corrections API endpoints.

CRUD and feedback for learned transaction tagging rules:
- Teach and reinforce patterns
- Find the rule that applies to a description
- Adjust confidence from accept/override feedback (may prune the rule)
- Propose new rules with the LLM
"""
import os
from typing import Optional

from fastapi import APIRouter, Depends, Query

from tagledger.api.deps import get_correction_service, get_rule_generator
from tagledger.models.requests import (
    AdjustConfidenceRequest,
    CreateCorrectionRequest,
    FindMatchRequest,
    ProposeRulesRequest,
    UpdateCorrectionRequest,
)
from tagledger.services.correction_learning import CorrectionLearningService
from tagledger.services.errors import NotFoundError, to_http_exception
from tagledger.services.rule_generator import RuleGenerator

router = APIRouter(prefix="/corrections", tags=["corrections"])

DEFAULT_LIMIT = 50
DEFAULT_MATCH_CONFIDENCE = float(os.getenv("TAGLEDGER_MATCH_MIN_CONFIDENCE", "0.7"))


def _dump(correction):
    return correction.model_dump(mode="json") if correction else None


# ============================================================================
# QUERIES
# ============================================================================

@router.get("")
async def list_corrections(
    min_confidence: Optional[float] = Query(default=None, ge=0, le=1),
    limit: int = Query(default=DEFAULT_LIMIT, gt=0),
    offset: int = Query(default=0, ge=0),
    service: CorrectionLearningService = Depends(get_correction_service),
):
    """List corrections, most trusted first, with an optional confidence floor."""
    page = service.list(min_confidence=min_confidence, limit=limit, offset=offset)
    return {
        "data": [_dump(c) for c in page.data],
        "pagination": page.pagination.model_dump(),
    }


@router.post("/find-match")
async def find_match(
    request: FindMatchRequest,
    service: CorrectionLearningService = Depends(get_correction_service),
):
    """
    Find the best rule for a transaction description.

    Returns ``{"data": null}`` when nothing applies; that is not an error.
    """
    min_confidence = DEFAULT_MATCH_CONFIDENCE if request.min_confidence is None else request.min_confidence
    return {"data": _dump(service.find_match(request.description, min_confidence))}


@router.post("/matches")
async def list_matches(
    request: FindMatchRequest,
    service: CorrectionLearningService = Depends(get_correction_service),
):
    """Every rule that applies to a description, in precedence order."""
    min_confidence = 0.0 if request.min_confidence is None else request.min_confidence
    matches = service.rank_matches(request.description, min_confidence)
    return {"data": [_dump(c) for c in matches], "count": len(matches)}


@router.get("/{correction_id}")
async def get_correction(
    correction_id: str,
    service: CorrectionLearningService = Depends(get_correction_service),
):
    try:
        return {"data": _dump(service.get(correction_id))}
    except NotFoundError as exc:
        raise to_http_exception(exc)


# ============================================================================
# MUTATIONS
# ============================================================================

@router.post("")
async def create_or_update_correction(
    request: CreateCorrectionRequest,
    service: CorrectionLearningService = Depends(get_correction_service),
):
    """
    Teach a pattern.

    Re-sending a known pattern/match type replaces its tags and reinforces it.
    """
    correction = service.create_or_update(
        pattern=request.pattern,
        match_type=request.match_type,
        tags=request.tags,
        entity_id=request.entity_id,
        entity_name=request.entity_name,
        location=request.location,
        online=request.online,
        transaction_type=request.transaction_type,
    )
    return {"data": _dump(correction), "message": "Correction saved"}


@router.patch("/{correction_id}")
async def update_correction(
    correction_id: str,
    request: UpdateCorrectionRequest,
    service: CorrectionLearningService = Depends(get_correction_service),
):
    """Edit fields directly. Confidence set here is never auto-pruned."""
    try:
        correction = service.update(correction_id, **request.model_dump(exclude_unset=True))
    except NotFoundError as exc:
        raise to_http_exception(exc)
    return {"data": _dump(correction), "message": "Correction updated"}


@router.post("/{correction_id}/adjust-confidence")
async def adjust_confidence(
    correction_id: str,
    request: AdjustConfidenceRequest,
    service: CorrectionLearningService = Depends(get_correction_service),
):
    try:
        result = service.adjust_confidence(correction_id, request.delta)
    except NotFoundError as exc:
        raise to_http_exception(exc)

    if result.pruned:
        return {"status": "pruned", "data": None, "message": "Correction pruned"}
    return {"status": "updated", "data": _dump(result.correction), "message": "Confidence adjusted"}


@router.delete("/{correction_id}")
async def delete_correction(
    correction_id: str,
    service: CorrectionLearningService = Depends(get_correction_service),
):
    try:
        service.delete(correction_id)
    except NotFoundError as exc:
        raise to_http_exception(exc)
    return {"message": "Correction deleted"}


@router.post("/propose")
async def propose_rules(
    request: ProposeRulesRequest,
    generator: RuleGenerator = Depends(get_rule_generator),
):
    """
    Propose rules for a batch of transactions.

    Nothing is saved; confirm each proposal with POST /corrections.
    """
    proposals = generator.propose_rules(request.transactions)
    return {"data": [p.model_dump(mode="json") for p in proposals], "count": len(proposals)}
