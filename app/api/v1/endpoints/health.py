import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_services
from app.core.database import get_db
from app.dependencies import ScoringServices

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(
    db: AsyncSession = Depends(get_db),
    services: ScoringServices = Depends(get_services),
) -> Dict[str, Any]:
    database = "ok"
    try:
        await db.execute(text("SELECT 1"))
    except Exception:
        logger.warning("Health check: database unreachable", exc_info=True)
        database = "unavailable"

    return {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "redis": "connected" if services.redis is not None else "disabled",
        "workers": {
            "running": services.workers.running,
            "in_flight": services.workers.in_flight,
            "concurrency": services.workers.concurrency,
        },
        "websocket_clients": services.hub.client_count,
    }
