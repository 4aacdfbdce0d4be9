from typing import Union

from fastapi import APIRouter, Depends, Request, Response

from app.api.deps import get_event_queue, get_scoring_engine
from app.core.config import settings
from app.core.rate_limit import limiter
from app.schemas.event import (
    BatchProcessingResult,
    EventProcessingResult,
    ScoringBatchRequest,
    ScoringEventRequest,
)
from app.schemas.queue import QueuedBatchResponse, QueuedEventResponse
from app.services.event_queue import EventQueue
from app.services.event_validation import EventValidator
from app.services.lead_scoring import LeadScoringEngine

router = APIRouter(prefix="/events", tags=["Events"])


@router.post(
    "",
    response_model=Union[EventProcessingResult, QueuedEventResponse],
    status_code=202,
)
@limiter.limit(settings.EVENTS_RATE_LIMIT)
async def submit_event(
    request: Request,
    response: Response,
    request_body: ScoringEventRequest,
    engine: LeadScoringEngine = Depends(get_scoring_engine),
    queue: EventQueue = Depends(get_event_queue),
) -> Union[EventProcessingResult, QueuedEventResponse]:
    """Accept one interaction event.

    By default the event is queued and ``202`` is returned.  With
    ``sync=true`` it is scored inline: ``201`` when applied, ``200`` when
    the event id was already processed.
    """
    event = request_body.to_event()
    if request_body.sync:
        result = await engine.apply_event(event)
        response.status_code = 200 if result.duplicate else 201
        return result
    return await queue.submit(event)


@router.post(
    "/batch",
    response_model=Union[BatchProcessingResult, QueuedBatchResponse],
    status_code=202,
)
@limiter.limit(settings.EVENTS_RATE_LIMIT)
async def submit_batch(
    request: Request,
    response: Response,
    request_body: ScoringBatchRequest,
    engine: LeadScoringEngine = Depends(get_scoring_engine),
    queue: EventQueue = Depends(get_event_queue),
) -> Union[BatchProcessingResult, QueuedBatchResponse]:
    """Accept up to ``MAX_BATCH_SIZE`` events in one call."""
    if request_body.sync:
        EventValidator.validate_batch_size(request_body.events, queue.max_batch_size)
        response.status_code = 200
        return await engine.apply_batch(request_body.events)
    return await queue.submit_batch(request_body.events)
