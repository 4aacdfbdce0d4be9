from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.api.deps import (
    get_event_repo,
    get_history_repo,
    get_lead_repo,
    get_recalculation_engine,
)
from app.core.exceptions import LeadNotFoundError
from app.repositories.event_repository import EventRepository
from app.repositories.lead_repository import LeadRepository
from app.repositories.score_history_repository import ScoreHistoryRepository
from app.schemas.event import ScoringEventOut
from app.schemas.lead import LeadOut, RecalculationResult, ScoreHistoryOut
from app.services.recalculation import RecalculationEngine

router = APIRouter(prefix="/leads", tags=["Leads"])


async def _require_lead(lead_repo: LeadRepository, lead_id: UUID):
    lead = await lead_repo.get_by_id(lead_id)
    if lead is None:
        raise LeadNotFoundError(f"Lead {lead_id} not found")
    return lead


@router.get("/leaderboard", response_model=List[LeadOut])
async def get_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    lead_repo: LeadRepository = Depends(get_lead_repo),
) -> List[LeadOut]:
    """Highest-scoring leads first."""
    leads = await lead_repo.list_leaderboard(limit)
    return [LeadOut.model_validate(lead) for lead in leads]


@router.get("/{lead_id}", response_model=LeadOut)
async def get_lead(
    lead_id: UUID,
    lead_repo: LeadRepository = Depends(get_lead_repo),
) -> LeadOut:
    lead = await _require_lead(lead_repo, lead_id)
    return LeadOut.model_validate(lead)


@router.get("/{lead_id}/history", response_model=List[ScoreHistoryOut])
async def get_score_history(
    lead_id: UUID,
    lead_repo: LeadRepository = Depends(get_lead_repo),
    history_repo: ScoreHistoryRepository = Depends(get_history_repo),
) -> List[ScoreHistoryOut]:
    """The lead's score ledger, oldest entry first."""
    await _require_lead(lead_repo, lead_id)
    entries = await history_repo.list_for_lead(lead_id)
    return [ScoreHistoryOut.model_validate(entry) for entry in entries]


@router.get("/{lead_id}/events", response_model=List[ScoringEventOut])
async def get_lead_events(
    lead_id: UUID,
    limit: int = Query(100, ge=1, le=1000),
    lead_repo: LeadRepository = Depends(get_lead_repo),
    event_repo: EventRepository = Depends(get_event_repo),
) -> List[ScoringEventOut]:
    await _require_lead(lead_repo, lead_id)
    events = await event_repo.list_for_lead(lead_id, limit=limit)
    return [ScoringEventOut.model_validate(event) for event in events]


@router.post("/{lead_id}/recalculate", response_model=RecalculationResult)
async def recalculate_lead(
    lead_id: UUID,
    recalculator: RecalculationEngine = Depends(get_recalculation_engine),
) -> RecalculationResult:
    """Rebuild the lead's score and history from its processed events."""
    return await recalculator.recalculate(lead_id)
