import logging
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, Request
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.locks import LeadLockRegistry
from app.services.event_queue import EventQueue
from app.services.lead_scoring import LeadScoringEngine
from app.services.notifications import ConnectionHub, ScoreNotifier
from app.services.recalculation import RecalculationEngine
from app.services.worker_pool import ScoringWorkerPool

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Process-wide service graph
# ---------------------------------------------------------------------------


@dataclass
class ScoringServices:
    """Long-lived collaborators shared by every request and worker.

    Built once per application in the lifespan hook and kept on
    ``app.state.services``.
    """

    hub: ConnectionHub
    notifier: ScoreNotifier
    locks: LeadLockRegistry
    engine: LeadScoringEngine
    queue: EventQueue
    workers: ScoringWorkerPool
    redis: Optional[Redis] = None

    @property
    def recalculator(self) -> RecalculationEngine:
        return self.engine.recalculator


def build_scoring_services(
    session_factory: Callable[..., AsyncSession],
    redis_client: Optional[Redis] = None,
) -> ScoringServices:
    hub = ConnectionHub()
    notifier = ScoreNotifier(hub=hub, redis_client=redis_client)
    locks = LeadLockRegistry()
    engine = LeadScoringEngine(session_factory, notifier=notifier, locks=locks)
    queue = EventQueue(session_factory)
    workers = ScoringWorkerPool(queue, engine)
    return ScoringServices(
        hub=hub,
        notifier=notifier,
        locks=locks,
        engine=engine,
        queue=queue,
        workers=workers,
        redis=redis_client,
    )


# ---------------------------------------------------------------------------
# Redis client factory
# ---------------------------------------------------------------------------


async def get_redis_client() -> Optional[Redis]:
    """Connect to Redis, or return ``None`` when it is unreachable."""
    if not settings.REDIS_URL:
        return None
    try:
        client = Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
        await client.ping()
        return client
    except Exception:
        logger.warning("Redis unavailable – pub/sub score updates disabled")
        return None


# ---------------------------------------------------------------------------
# Repository factory functions (one per repository, each gets the shared db)
# ---------------------------------------------------------------------------


async def get_lead_repo(
    db: AsyncSession = Depends(get_db),
):
    from app.repositories.lead_repository import LeadRepository

    return LeadRepository(db)


async def get_event_repo(
    db: AsyncSession = Depends(get_db),
):
    from app.repositories.event_repository import EventRepository

    return EventRepository(db)


async def get_history_repo(
    db: AsyncSession = Depends(get_db),
):
    from app.repositories.score_history_repository import ScoreHistoryRepository

    return ScoreHistoryRepository(db)


async def get_scoring_rule_repo(
    db: AsyncSession = Depends(get_db),
):
    from app.repositories.scoring_rule_repository import ScoringRuleRepository

    return ScoringRuleRepository(db)


async def get_rule_store(
    scoring_rule_repo=Depends(get_scoring_rule_repo),
):
    """Build a :class:`RuleStore` over the request's session."""
    from app.services.rule_store import RuleStore

    return RuleStore(scoring_rule_repo)


# ---------------------------------------------------------------------------
# Service factory functions
# ---------------------------------------------------------------------------


def get_services(request: Request) -> ScoringServices:
    return request.app.state.services


def get_scoring_engine(
    services: ScoringServices = Depends(get_services),
) -> LeadScoringEngine:
    return services.engine


def get_recalculation_engine(
    services: ScoringServices = Depends(get_services),
) -> RecalculationEngine:
    return services.recalculator


def get_event_queue(
    services: ScoringServices = Depends(get_services),
) -> EventQueue:
    return services.queue
