from typing import List

from fastapi import APIRouter, Depends

from app.api.deps import get_rule_store
from app.schemas.rule import ScoringRuleOut, ScoringRuleUpdate
from app.services.rule_store import RuleStore

router = APIRouter(prefix="/rules", tags=["Scoring Rules"])


@router.get("", response_model=List[ScoringRuleOut])
async def list_rules(
    rule_store: RuleStore = Depends(get_rule_store),
) -> List[ScoringRuleOut]:
    rules = await rule_store.list_rules()
    return [ScoringRuleOut.model_validate(rule) for rule in rules]


@router.get("/{event_type}", response_model=ScoringRuleOut)
async def get_rule(
    event_type: str,
    rule_store: RuleStore = Depends(get_rule_store),
) -> ScoringRuleOut:
    rule = await rule_store.get_rule(event_type)
    return ScoringRuleOut.model_validate(rule)


@router.put("/{event_type}", response_model=ScoringRuleOut)
async def update_rule(
    event_type: str,
    request_body: ScoringRuleUpdate,
    rule_store: RuleStore = Depends(get_rule_store),
) -> ScoringRuleOut:
    """Change a rule's points, active flag or description.

    The new values apply to every event scored from now on.  Existing
    scores only move when a lead is recalculated.
    """
    rule = await rule_store.update_rule(event_type, request_body)
    return ScoringRuleOut.model_validate(rule)
