from app.models.base import Base
from app.models.lead import Lead
from app.models.event import ScoringEvent
from app.models.score_history import ScoreHistory
from app.models.scoring_rule import ScoringRule
from app.models.scoring_job import ScoringJob

# Import event listeners to register them
from app.models import listeners  # noqa: F401

__all__ = [
    "Base",
    "Lead",
    "ScoringEvent",
    "ScoreHistory",
    "ScoringRule",
    "ScoringJob",
]
