from sqlalchemy import Boolean, Column, Integer, String

from app.models.base import Base, UTCDateTime, utcnow


class ScoringRule(Base):
    """Signed point delta applied for one event type.

    Inactive rules block scoring for their event type but the events are
    still recorded in the ledger.  Rules are seeded from
    ``DEFAULT_SCORING_RULES`` when the table is empty.
    """

    __tablename__ = "scoring_rules"
    event_type = Column(String(50), primary_key=True)
    points = Column(Integer, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    description = Column(String(255))
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow)
