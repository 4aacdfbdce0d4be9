from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_event_queue
from app.schemas.queue import CleanResponse, JobStatusResponse, QueueStats
from app.services.event_queue import EventQueue

router = APIRouter(prefix="/queue", tags=["Queue"])


@router.get("/stats", response_model=QueueStats)
async def get_queue_stats(
    queue: EventQueue = Depends(get_event_queue),
) -> QueueStats:
    return await queue.stats()


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def get_job_status(
    job_id: str,
    queue: EventQueue = Depends(get_event_queue),
) -> JobStatusResponse:
    return await queue.job_status(job_id)


@router.post("/jobs/{job_id}/retry", response_model=JobStatusResponse)
async def retry_job(
    job_id: str,
    queue: EventQueue = Depends(get_event_queue),
) -> JobStatusResponse:
    """Re-queue a dead-lettered job."""
    return await queue.retry_job(job_id)


@router.post("/clean", response_model=CleanResponse)
async def clean_completed_jobs(
    older_than_hours: Optional[float] = Query(None, ge=0),
    queue: EventQueue = Depends(get_event_queue),
) -> CleanResponse:
    older_than = None if older_than_hours is None else timedelta(hours=older_than_hours)
    removed = await queue.clean_completed(older_than)
    return CleanResponse(
        removed=removed,
        message=f"Removed {removed} completed job(s)",
    )
