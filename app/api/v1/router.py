from fastapi import APIRouter

from app.api.v1.endpoints import (
    events,
    export,
    health,
    leads,
    queue,
    replay,
    rules,
    scores_ws,
)

router = APIRouter(prefix="/api/v1")

router.include_router(events.router)
router.include_router(leads.router)
router.include_router(replay.router)
router.include_router(export.router)
router.include_router(rules.router)
router.include_router(queue.router)
router.include_router(health.router)
router.include_router(scores_ws.router)
