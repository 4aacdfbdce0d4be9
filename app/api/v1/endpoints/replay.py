from fastapi import APIRouter, Depends

from app.api.deps import get_recalculation_engine
from app.schemas.lead import ReplayResponse
from app.services.recalculation import RecalculationEngine

router = APIRouter(tags=["Replay"])


@router.post("/replay", response_model=ReplayResponse)
async def replay_all(
    recalculator: RecalculationEngine = Depends(get_recalculation_engine),
) -> ReplayResponse:
    """Recalculate every lead from its event ledger."""
    results = await recalculator.recalculate_all()
    return ReplayResponse(
        message=f"Replayed events for {len(results)} leads",
        results=results,
    )
