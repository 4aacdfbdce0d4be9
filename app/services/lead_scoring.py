import logging
from typing import Callable, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.exceptions import (
    LeadNotFoundError,
    ScoreWriteConflictError,
    TransientStoreError,
)
from app.core.locks import LeadLockRegistry
from app.models.event import ScoringEvent
from app.models.lead import Lead
from app.repositories.event_repository import EventRepository
from app.repositories.lead_repository import LeadRepository
from app.repositories.score_history_repository import ScoreHistoryRepository
from app.repositories.scoring_rule_repository import ScoringRuleRepository
from app.schemas.common import ScoringOutcome
from app.schemas.event import (
    BatchEventError,
    BatchProcessingResult,
    EventProcessingResult,
    ScoringEventIn,
)
from app.schemas.notification import ScoreUpdate
from app.services.notifications import ScoreNotifier
from app.services.recalculation import (
    RecalculationEngine,
    clamp_score,
    describe_change,
)
from app.services.rule_store import RuleStore

logger = logging.getLogger(__name__)


class _StoredUnderOtherLead(Exception):
    """The ledgered event belongs to a lead other than the one locked."""

    def __init__(self, lead_id: UUID) -> None:
        super().__init__(str(lead_id))
        self.lead_id = lead_id


class LeadScoringEngine:
    """Apply interaction events to lead scores.

    For one event the engine:

    1. returns a ``duplicate`` result if the event id was already
       processed (no writes, no notification);
    2. ledgers the event and commits, before looking at the rule, so an
       event for an inactive rule is kept for later;
    3. looks up the active rule (``RuleNotFoundError`` /
       ``RuleInactiveError`` otherwise);
    4. compares the event time with the tail of the lead's history.  An
       in-order event adds ``points`` clamped to ``[0, max_score]`` and
       appends one history row; an earlier event is marked processed and
       the whole ledger is replayed in the same transaction.

    Everything from step 2 on runs while holding the lock of the lead the
    event is stored under, from the :class:`LeadLockRegistry` shared with
    the recalculation engine, so work for one lead is strictly serial
    while different leads proceed in parallel.  Across processes the
    lead row lock and a conditional flip of ``processed`` make sure only
    one transaction scores a given event.
    """

    def __init__(
        self,
        session_factory: Callable[..., AsyncSession],
        notifier: Optional[ScoreNotifier] = None,
        locks: Optional[LeadLockRegistry] = None,
        max_score: Optional[int] = None,
        recalculation_lock_timeout: Optional[float] = None,
    ) -> None:
        self._session_factory = session_factory
        self._notifier = notifier
        self._locks = locks or LeadLockRegistry()
        self._max_score = settings.MAX_SCORE if max_score is None else max_score
        self.recalculator = RecalculationEngine(
            session_factory,
            locks=self._locks,
            max_score=self._max_score,
            lock_timeout=recalculation_lock_timeout,
        )

    @property
    def locks(self) -> LeadLockRegistry:
        return self._locks

    # ------------------------------------------------------------------
    # Single event
    # ------------------------------------------------------------------

    async def apply_event(self, event: ScoringEventIn) -> EventProcessingResult:
        # The stored record decides which lead a retried event belongs to
        async with self._session_factory() as session:
            existing = await EventRepository(session).get(event.event_id)
        if existing is not None and existing.processed:
            return self._duplicate_result(existing)
        lead_id = existing.lead_id if existing is not None else event.lead_id

        while True:
            try:
                async with self._locks.hold(lead_id):
                    result, update = await self._apply_locked(event, lead_id)
                break
            except _StoredUnderOtherLead as moved:
                # A concurrent delivery ledgered the id for another lead
                lead_id = moved.lead_id
            except StaleDataError as exc:
                raise ScoreWriteConflictError(
                    f"Score for lead {lead_id} changed concurrently"
                ) from exc
            except OperationalError as exc:
                raise TransientStoreError(
                    f"Database error while scoring event {event.event_id}: {exc.orig}"
                ) from exc

        if update is not None:
            await self._notify(update)
        return result

    async def _apply_locked(
        self, event: ScoringEventIn, lock_key: UUID
    ) -> Tuple[EventProcessingResult, Optional[ScoreUpdate]]:
        async with self._session_factory() as session:
            leads = LeadRepository(session)
            events = EventRepository(session)
            history = ScoreHistoryRepository(session)
            rules = RuleStore(ScoringRuleRepository(session))

            # Re-check under the lock; a concurrent delivery may have won
            record = await events.get(event.event_id)
            if record is not None and record.processed:
                return self._duplicate_result(record), None

            if record is None:
                if await leads.get_by_id(event.lead_id) is None:
                    raise LeadNotFoundError(f"Lead {event.lead_id} not found")
                record, _ = await events.record_if_new(event)
                await session.commit()

            if record.lead_id != lock_key:
                raise _StoredUnderOtherLead(record.lead_id)
            if (record.lead_id, record.event_type) != (event.lead_id, event.event_type):
                logger.warning(
                    "Event %s redelivered as %s for lead %s; scoring stored %s for lead %s",
                    record.event_id,
                    event.event_type,
                    event.lead_id,
                    record.event_type,
                    record.lead_id,
                )

            rule = await rules.get_active_rule(record.event_type)

            lead = await leads.get_for_update(record.lead_id)
            if lead is None:
                raise LeadNotFoundError(f"Lead {record.lead_id} not found")

            # Another process may have finished this event while we waited
            # for the row lock
            record = await events.get(record.event_id)
            if record.processed:
                return self._duplicate_result(record), None

            previous = lead.current_score
            tail = await history.get_tail(lead.lead_id)
            out_of_order = tail is not None and record.timestamp < tail.timestamp
            sequence = lead.next_sequence()

            if not await events.mark_processed(record, sequence):
                await session.rollback()
                record = await events.get(event.event_id)
                return self._duplicate_result(record), None

            if out_of_order:
                await session.flush()
                await self.recalculator.rebuild(session, lead)
                message = "Out-of-order event; score recalculated"
            else:
                new_score = clamp_score(previous + rule.points, self._max_score)
                await history.append(
                    lead_id=lead.lead_id,
                    sequence=sequence,
                    score=new_score,
                    previous_score=previous,
                    change=new_score - previous,
                    event_id=record.event_id,
                    event_type=record.event_type,
                    reason=describe_change(record.event_type, rule.points),
                    timestamp=record.timestamp,
                )
                lead.current_score = new_score
                message = "Event processed successfully"

            await session.commit()

        new_score = lead.current_score
        logger.info(
            "Processed %s event %s for lead %s: %d → %d%s",
            record.event_type,
            record.event_id,
            lead.lead_id,
            previous,
            new_score,
            " (out of order)" if out_of_order else "",
        )

        result = EventProcessingResult(
            outcome=(
                ScoringOutcome.out_of_order if out_of_order else ScoringOutcome.applied
            ),
            out_of_order=out_of_order,
            event_id=record.event_id,
            lead_id=lead.lead_id,
            event_type=record.event_type,
            previous_score=previous,
            new_score=new_score,
            change=new_score - previous,
            message=message,
        )
        return result, self._score_update(lead, record, previous, out_of_order)

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    async def apply_batch(
        self, events: Sequence[ScoringEventIn]
    ) -> BatchProcessingResult:
        """Apply *events* one by one in timestamp order.

        Sorting first means a batch that arrives shuffled is mostly
        in-order by the time it reaches the engine, so few events need a
        replay.  A failing event is reported and does not stop the rest.
        """
        summary = BatchProcessingResult()
        for event in sorted(events, key=lambda e: e.timestamp):
            try:
                result = await self.apply_event(event)
            except Exception as exc:
                detail = getattr(exc, "detail", None) or str(exc)
                logger.warning("Batch event %s failed: %s", event.event_id, detail)
                summary.failed += 1
                summary.errors.append(
                    BatchEventError(event_id=event.event_id, error=detail)
                )
                continue

            if result.duplicate:
                summary.duplicates += 1
            else:
                summary.processed += 1
                if result.out_of_order:
                    summary.out_of_order += 1

        logger.info(
            "Batch done: %d processed, %d duplicates, %d out of order, %d failed",
            summary.processed,
            summary.duplicates,
            summary.out_of_order,
            summary.failed,
        )
        return summary

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _duplicate_result(record: ScoringEvent) -> EventProcessingResult:
        logger.info("Duplicate event %s ignored", record.event_id)
        return EventProcessingResult(
            outcome=ScoringOutcome.duplicate,
            duplicate=True,
            event_id=record.event_id,
            lead_id=record.lead_id,
            event_type=record.event_type,
            message="Event already processed",
        )

    @staticmethod
    def _score_update(
        lead: Lead, record: ScoringEvent, previous: int, out_of_order: bool
    ) -> ScoreUpdate:
        return ScoreUpdate(
            lead_id=lead.lead_id,
            lead_name=lead.name,
            lead_email=lead.email,
            previous_score=previous,
            new_score=lead.current_score,
            change=lead.current_score - previous,
            event_type=record.event_type,
            timestamp=record.timestamp,
            out_of_order=out_of_order,
        )

    async def _notify(self, update: ScoreUpdate) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier.broadcast(update)
        except Exception:
            logger.warning("Score notification failed for lead %s", update.lead_id)
