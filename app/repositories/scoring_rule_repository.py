import logging
from typing import List, Optional

from sqlalchemy import select, func

from app.models.scoring_rule import ScoringRule
from app.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class ScoringRuleRepository(BaseRepository):
    """Encapsulates queries against the ``scoring_rules`` table."""

    async def get(self, event_type: str) -> Optional[ScoringRule]:
        """Return the rule for *event_type* whether active or not."""
        result = await self._db.execute(
            select(ScoringRule).where(ScoringRule.event_type == event_type)
        )
        return result.scalar_one_or_none()

    async def list_all(self) -> List[ScoringRule]:
        """Return all scoring rules ordered by event type."""
        result = await self._db.execute(
            select(ScoringRule).order_by(ScoringRule.event_type)
        )
        return list(result.scalars().all())

    async def list_active(self) -> List[ScoringRule]:
        result = await self._db.execute(
            select(ScoringRule)
            .where(ScoringRule.active.is_(True))
            .order_by(ScoringRule.event_type)
        )
        return list(result.scalars().all())

    async def seed_if_empty(self) -> int:
        """Insert default scoring rules when the table is empty.

        Uses a row-count check so this is idempotent; calling it on a
        table that already has rules is a cheap no-op.  Returns the
        number of rules inserted.

        The canonical rule definitions live in
        ``app.core.default_scoring_rules.DEFAULT_SCORING_RULES``.
        """
        from app.core.default_scoring_rules import DEFAULT_SCORING_RULES

        count_result = await self._db.execute(
            select(func.count()).select_from(ScoringRule)
        )
        if count_result.scalar():
            return 0  # rules already present

        logger.info("scoring_rules table is empty, seeding defaults")
        for rule_data in DEFAULT_SCORING_RULES:
            self._db.add(ScoringRule(**rule_data))
        await self._db.flush()
        logger.info("Seeded %d default scoring rules", len(DEFAULT_SCORING_RULES))
        return len(DEFAULT_SCORING_RULES)

    async def create(self, **kwargs) -> ScoringRule:
        rule = ScoringRule(**kwargs)
        self._db.add(rule)
        return rule
