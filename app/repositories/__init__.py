"""Repository layer – all database access goes through here.

Repositories encapsulate SQLAlchemy queries so that the service layer
only contains business logic.
"""

from app.repositories.lead_repository import LeadRepository
from app.repositories.event_repository import EventRepository
from app.repositories.score_history_repository import ScoreHistoryRepository
from app.repositories.scoring_rule_repository import ScoringRuleRepository
from app.repositories.job_repository import JobRepository

__all__ = [
    "LeadRepository",
    "EventRepository",
    "ScoreHistoryRepository",
    "ScoringRuleRepository",
    "JobRepository",
]
