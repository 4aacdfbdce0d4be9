from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class ScoreUpdate(BaseModel):
    """Message pushed to real-time subscribers after a score change."""

    lead_id: UUID
    lead_name: str
    lead_email: str
    previous_score: int
    new_score: int
    change: int
    event_type: str
    timestamp: datetime
    out_of_order: bool = False
