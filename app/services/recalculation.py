import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.constants import MIN_SCORE
from app.core.exceptions import LeadNotFoundError, ScoreWriteConflictError
from app.core.locks import LeadLockRegistry
from app.models.event import ScoringEvent
from app.models.lead import Lead
from app.repositories.event_repository import EventRepository
from app.repositories.lead_repository import LeadRepository
from app.repositories.score_history_repository import ScoreHistoryRepository
from app.repositories.scoring_rule_repository import ScoringRuleRepository
from app.schemas.lead import RecalculationResult
from app.services.rule_store import RuleStore

logger = logging.getLogger(__name__)


def clamp_score(value: int, max_score: int, min_score: int = MIN_SCORE) -> int:
    return max(min_score, min(max_score, value))


def describe_change(event_type: str, points: int) -> str:
    return f"{event_type} ({points:+d} points)"


def replay_events(
    events: Sequence[ScoringEvent],
    points_by_type: Mapping[str, int],
    max_score: int,
) -> Tuple[int, List[Dict[str, Any]]]:
    """Fold *events* (already in ``(timestamp, sequence)`` order) into a ledger.

    The clamp is applied after every step: once a lead hits the floor or
    the ceiling, later deltas act on the clamped value, so the running
    total depends on order.  Events whose type has no active rule add
    neither points nor a ledger entry.

    Returns ``(final_score, entries)``.
    """
    score = 0
    entries: List[Dict[str, Any]] = []
    for event in events:
        points = points_by_type.get(event.event_type)
        if points is None:
            logger.debug(
                "Skipping event %s during replay: no active rule for %s",
                event.event_id,
                event.event_type,
            )
            continue
        previous = score
        score = clamp_score(score + points, max_score)
        entries.append(
            {
                "sequence": event.sequence,
                "score": score,
                "previous_score": previous,
                "change": score - previous,
                "event_id": event.event_id,
                "event_type": event.event_type,
                "reason": describe_change(event.event_type, points),
                "timestamp": event.timestamp,
            }
        )
    return score, entries


class RecalculationEngine:
    """Rebuild a lead's score and ledger from its processed events.

    The rebuild runs in one transaction: the old ledger is deleted, the
    new one inserted and ``leads.current_score`` updated together, so an
    interrupted recalculation leaves the previous ledger untouched.

    Rule values are read at recalculation time.  Editing a rule and then
    recalculating rewrites that lead's history with the new values.
    """

    def __init__(
        self,
        session_factory: Callable[..., AsyncSession],
        locks: Optional[LeadLockRegistry] = None,
        max_score: Optional[int] = None,
        lock_timeout: Optional[float] = None,
    ) -> None:
        self._session_factory = session_factory
        self._locks = locks or LeadLockRegistry()
        self._max_score = settings.MAX_SCORE if max_score is None else max_score
        self._lock_timeout = (
            settings.RECALCULATION_LOCK_TIMEOUT_SECONDS
            if lock_timeout is None
            else lock_timeout
        )

    @property
    def locks(self) -> LeadLockRegistry:
        return self._locks

    @property
    def max_score(self) -> int:
        return self._max_score

    async def recalculate(self, lead_id: UUID) -> RecalculationResult:
        """Replay one lead's ledger.

        Serialised with any other scoring work for the same lead; if the
        lock is not free within the configured timeout the call fails
        with ``RecalculationConflictError`` and may be retried.
        """
        async with self._locks.hold(lead_id, timeout=self._lock_timeout):
            async with self._session_factory() as session:
                lead = await LeadRepository(session).get_for_update(lead_id)
                if lead is None:
                    raise LeadNotFoundError(f"Lead {lead_id} not found")
                try:
                    result = await self.rebuild(session, lead)
                    await session.commit()
                except StaleDataError as exc:
                    await session.rollback()
                    raise ScoreWriteConflictError(
                        f"Score for lead {lead_id} changed during recalculation"
                    ) from exc

        logger.info(
            "Recalculated lead %s: %d → %d (%d events)",
            lead_id,
            result.previous_score,
            result.new_score,
            result.events_processed,
        )
        return result

    async def rebuild(self, session: AsyncSession, lead: Lead) -> RecalculationResult:
        """Replay inside the caller's transaction; the caller commits.

        The caller must hold the lead's lock and row lock.
        """
        events = await EventRepository(session).list_processed_for_lead(lead.lead_id)
        points = await RuleStore(ScoringRuleRepository(session)).active_points()
        score, entries = replay_events(events, points, self._max_score)

        await ScoreHistoryRepository(session).replace_for_lead(lead.lead_id, entries)

        previous = lead.current_score
        lead.current_score = score
        lead.ledger_version = (lead.ledger_version or 0) + 1
        await session.flush()

        return RecalculationResult(
            lead_id=lead.lead_id,
            previous_score=previous,
            new_score=score,
            change=score - previous,
            events_processed=len(events),
            ledger_version=lead.ledger_version,
        )

    async def recalculate_all(self) -> List[RecalculationResult]:
        """Recalculate every lead, one transaction per lead."""
        async with self._session_factory() as session:
            lead_ids = await LeadRepository(session).list_ids()

        results: List[RecalculationResult] = []
        for lead_id in lead_ids:
            results.append(await self.recalculate(lead_id))
        logger.info("Replayed ledgers for %d lead(s)", len(results))
        return results
