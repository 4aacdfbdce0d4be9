from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.engine import Row

from app.models.score_history import ScoreHistory
from app.repositories.base import BaseRepository


class ScoreHistoryRepository(BaseRepository):
    """Encapsulates queries against the ``score_history`` ledger."""

    async def get_tail(self, lead_id: UUID) -> Optional[Row]:
        """Return ``(timestamp, sequence, score)`` of the newest entry.

        Newest means greatest ``(timestamp, sequence)``.  Only columns are
        selected so no ledger rows enter the identity map ahead of a
        rebuild that re-inserts the same keys.
        """
        result = await self._db.execute(
            select(ScoreHistory.timestamp, ScoreHistory.sequence, ScoreHistory.score)
            .where(ScoreHistory.lead_id == lead_id)
            .order_by(ScoreHistory.timestamp.desc(), ScoreHistory.sequence.desc())
            .limit(1)
        )
        return result.first()

    async def append(self, **kwargs: Any) -> ScoreHistory:
        """Add one ledger entry to the current unit of work."""
        entry = ScoreHistory(**kwargs)
        self._db.add(entry)
        return entry

    async def replace_for_lead(
        self, lead_id: UUID, entries: List[Dict[str, Any]]
    ) -> None:
        """Swap the lead's whole ledger for *entries*.

        Runs inside the caller's transaction; readers see either the old
        ledger or the new one once it commits.
        """
        await self._db.execute(
            delete(ScoreHistory)
            .where(ScoreHistory.lead_id == lead_id)
            .execution_options(synchronize_session=False)
        )
        self._db.add_all(ScoreHistory(lead_id=lead_id, **entry) for entry in entries)
        await self._db.flush()

    async def list_for_lead(self, lead_id: UUID) -> List[ScoreHistory]:
        """Return the lead's ledger in ``(timestamp, sequence)`` order."""
        result = await self._db.execute(
            select(ScoreHistory)
            .where(ScoreHistory.lead_id == lead_id)
            .order_by(ScoreHistory.timestamp.asc(), ScoreHistory.sequence.asc())
        )
        return list(result.scalars().all())
