from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class QueuedEventResponse(BaseModel):
    job_id: str
    queued: bool = True
    message: str = "Event queued for processing"


class QueuedBatchResponse(BaseModel):
    queued: int
    job_ids: List[str] = Field(default_factory=list)
    message: str = ""


class QueueStats(BaseModel):
    """Job counts per state."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0
    total: int = 0


class JobStatusResponse(BaseModel):
    job_id: str
    state: str
    priority: int
    attempts_made: int
    max_attempts: int
    failed_reason: Optional[str] = None
    processed_on: Optional[datetime] = None
    finished_on: Optional[datetime] = None
    next_run_at: Optional[datetime] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    return_value: Optional[Dict[str, Any]] = None


class CleanResponse(BaseModel):
    removed: int
    message: str
