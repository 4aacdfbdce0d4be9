"""Lead read-side schemas (score, history, recalculation)."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.common import SuccessResponse


class LeadOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lead_id: UUID
    name: str
    email: str
    company: Optional[str] = None
    status: str
    current_score: int = Field(..., ge=0)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ScoreHistoryOut(BaseModel):
    """One entry of a lead's score ledger."""

    model_config = ConfigDict(from_attributes=True)

    sequence: int
    score: int
    previous_score: int
    change: int
    event_id: str
    event_type: str
    reason: str
    timestamp: datetime


class RecalculationResult(BaseModel):
    """Before/after totals of a full ledger replay."""

    lead_id: UUID
    previous_score: int
    new_score: int
    change: int
    events_processed: int
    ledger_version: int


class ReplayResponse(SuccessResponse):
    """Response body for POST /api/v1/replay."""

    message: str
    results: List[RecalculationResult] = Field(default_factory=list)
