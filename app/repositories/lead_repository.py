from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import select

from app.models.lead import Lead
from app.repositories.base import BaseRepository


class LeadRepository(BaseRepository):
    """Encapsulates every SQL query that touches the ``leads`` table."""

    async def get_by_id(self, lead_id: UUID) -> Optional[Lead]:
        """Return a single lead by primary key, or ``None``."""
        result = await self._db.execute(select(Lead).where(Lead.lead_id == lead_id))
        return result.scalar_one_or_none()

    async def get_for_update(self, lead_id: UUID) -> Optional[Lead]:
        """Return the lead with its row locked until the transaction ends.

        ``populate_existing`` refreshes a copy already in the identity map
        so the score read inside the critical section is never stale.
        SQLite has no row locks; there the per-lead lock registry and the
        ``score_version`` check carry the guarantee.
        """
        result = await self._db.execute(
            select(Lead)
            .where(Lead.lead_id == lead_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_score(self, lead_id: UUID) -> Optional[int]:
        """Return the current score for a lead."""
        result = await self._db.execute(
            select(Lead.current_score).where(Lead.lead_id == lead_id)
        )
        return result.scalar_one_or_none()

    async def list_leaderboard(self, limit: Optional[int] = 10) -> List[Lead]:
        """Return the highest scored leads; ``limit=None`` returns all of them."""
        result = await self._db.execute(
            select(Lead)
            .order_by(Lead.current_score.desc(), Lead.created_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_ids(self) -> List[UUID]:
        result = await self._db.execute(select(Lead.lead_id).order_by(Lead.created_at))
        return list(result.scalars().all())

    async def create(self, **kwargs: Any) -> Lead:
        """Insert a new lead and return the model instance."""
        lead = Lead(**kwargs)
        self._db.add(lead)
        return lead
