import logging
from typing import Dict, List

from app.core.exceptions import (
    RuleInactiveError,
    RuleNotFoundError,
    RuleValidationError,
)
from app.models.scoring_rule import ScoringRule
from app.repositories.scoring_rule_repository import ScoringRuleRepository
from app.schemas.rule import ScoringRuleUpdate

logger = logging.getLogger(__name__)


class RuleStore:
    """Scoring rules as seen by the engines, plus the configuration boundary.

    The engines only ever call :meth:`get_active_rule` and
    :meth:`active_points`, at the moment of use.  Edits made through
    :meth:`update_rule` apply to every later ``apply_event`` and
    ``recalculate`` call; there is no effective-dating.
    """

    def __init__(self, repo: ScoringRuleRepository) -> None:
        self._repo = repo

    async def get_active_rule(self, event_type: str) -> ScoringRule:
        rule = await self._repo.get(event_type)
        if rule is None:
            raise RuleNotFoundError(
                f"No scoring rule found for event type: {event_type}"
            )
        if not rule.active:
            raise RuleInactiveError(
                f"Scoring rule for event type {event_type} is inactive"
            )
        return rule

    async def active_points(self) -> Dict[str, int]:
        """Map of event type to points for every active rule."""
        rules = await self._repo.list_active()
        return {rule.event_type: rule.points for rule in rules}

    async def get_rule(self, event_type: str) -> ScoringRule:
        rule = await self._repo.get(event_type)
        if rule is None:
            raise RuleNotFoundError(
                f"No scoring rule found for event type: {event_type}"
            )
        return rule

    async def list_rules(self) -> List[ScoringRule]:
        return await self._repo.list_all()

    async def update_rule(
        self, event_type: str, changes: ScoringRuleUpdate
    ) -> ScoringRule:
        """Apply *changes* to a rule and commit.

        A configured event type without a rule yet gets one created,
        provided ``points`` is supplied.
        """
        from app.core.config import settings

        if changes.points is not None and abs(changes.points) > settings.MAX_SCORE:
            raise RuleValidationError(
                f"points must be between -{settings.MAX_SCORE} and {settings.MAX_SCORE}"
            )

        rule = await self._repo.get(event_type)
        if rule is None:
            if event_type not in settings.event_types or changes.points is None:
                raise RuleNotFoundError(
                    f"No scoring rule found for event type: {event_type}"
                )
            rule = await self._repo.create(
                event_type=event_type,
                points=changes.points,
                active=True if changes.active is None else changes.active,
                description=changes.description,
            )
            logger.info("Created scoring rule %s (%+d)", event_type, rule.points)
        else:
            if changes.points is not None:
                rule.points = changes.points
            if changes.active is not None:
                rule.active = changes.active
            if changes.description is not None:
                rule.description = changes.description
            logger.info(
                "Updated scoring rule %s: points=%d active=%s",
                event_type,
                rule.points,
                rule.active,
            )
        await self._repo.commit()
        return rule

    async def seed_defaults(self) -> int:
        inserted = await self._repo.seed_if_empty()
        await self._repo.commit()
        return inserted
