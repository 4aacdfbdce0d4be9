from sqlalchemy import event

from app.models.base import utcnow
from app.models.lead import Lead
from app.models.scoring_rule import ScoringRule


# Auto updated_at
@event.listens_for(Lead, "before_update")
@event.listens_for(ScoringRule, "before_update")
def update_timestamp(mapper, connection, target):
    target.updated_at = utcnow()
