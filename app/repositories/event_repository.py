import logging
from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm.attributes import set_committed_value

from app.models.event import ScoringEvent
from app.models.base import utcnow
from app.repositories.base import BaseRepository
from app.schemas.event import ScoringEventIn

logger = logging.getLogger(__name__)


class EventRepository(BaseRepository):
    """Event ledger and idempotency gate over ``scoring_events``."""

    async def get(self, event_id: str) -> Optional[ScoringEvent]:
        result = await self._db.execute(
            select(ScoringEvent)
            .where(ScoringEvent.event_id == event_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def record_if_new(self, event: ScoringEventIn) -> Tuple[ScoringEvent, bool]:
        """Insert *event* unless its id is already ledgered.

        Returns ``(record, is_new)``.  The insert is a single
        ``INSERT ... ON CONFLICT DO NOTHING`` so concurrent identical
        deliveries resolve to exactly one winner; losers read back the
        winner's row.  Nothing is committed here.
        """
        values = {
            "event_id": event.event_id,
            "event_type": event.event_type,
            "lead_id": event.lead_id,
            "timestamp": event.timestamp,
            "event_metadata": event.metadata,
            "processed": False,
            "created_at": utcnow(),
        }
        table = ScoringEvent.__table__
        bind = self._db.get_bind()
        if bind.dialect.name == "postgresql":
            stmt = pg_insert(table).values(**values)
        else:
            stmt = sqlite_insert(table).values(**values)
        stmt = stmt.on_conflict_do_nothing(index_elements=["event_id"])
        result = await self._db.execute(stmt)
        is_new = result.rowcount == 1

        record = await self.get(event.event_id)
        if record is None:
            # Only possible if the row was removed between the two statements
            raise RuntimeError(f"Event {event.event_id} vanished after insert")
        return record, is_new

    async def mark_processed(
        self, record: ScoringEvent, sequence: int, processed_at: Optional[datetime] = None
    ) -> bool:
        """Flip ``processed`` and stamp the ledger sequence.

        The flip is a conditional ``UPDATE ... WHERE processed = false``;
        ``False`` means another transaction got there first and nothing
        was written.
        """
        processed_at = processed_at or utcnow()
        result = await self._db.execute(
            update(ScoringEvent)
            .where(
                ScoringEvent.event_id == record.event_id,
                ScoringEvent.processed.is_(False),
            )
            .values(processed=True, processed_at=processed_at, sequence=sequence)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning("Event %s was already processed elsewhere", record.event_id)
            return False
        set_committed_value(record, "processed", True)
        set_committed_value(record, "processed_at", processed_at)
        set_committed_value(record, "sequence", sequence)
        return True

    async def list_processed_for_lead(self, lead_id: UUID) -> List[ScoringEvent]:
        """Return the lead's processed events in replay order."""
        result = await self._db.execute(
            select(ScoringEvent)
            .where(
                ScoringEvent.lead_id == lead_id,
                ScoringEvent.processed.is_(True),
            )
            .order_by(ScoringEvent.timestamp.asc(), ScoringEvent.sequence.asc())
        )
        return list(result.scalars().all())

    async def list_for_lead(
        self, lead_id: UUID, limit: Optional[int] = 100
    ) -> List[ScoringEvent]:
        """Return the most recent events for a lead, newest first."""
        result = await self._db.execute(
            select(ScoringEvent)
            .where(ScoringEvent.lead_id == lead_id)
            .order_by(ScoringEvent.timestamp.desc(), ScoringEvent.sequence.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
