from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.models.base import Base, UTCDateTime, utcnow


class ScoringEvent(Base):
    """Ledger row for every event ever received, keyed by its idempotency id.

    Rows are created on first ingestion and never deleted by the engine.
    ``processed`` flips to true exactly once, at which point ``sequence``
    is taken from the lead's counter.
    """

    __tablename__ = "scoring_events"
    event_id = Column(String(255), primary_key=True)
    event_type = Column(String(50), nullable=False)
    lead_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("leads.lead_id", ondelete="CASCADE"),
        nullable=False,
    )
    timestamp = Column(UTCDateTime, nullable=False)
    # "metadata" is reserved on declarative classes
    event_metadata = Column(
        "metadata", JSON, key="event_metadata", nullable=False, default=dict
    )
    processed = Column(Boolean, nullable=False, default=False)
    processed_at = Column(UTCDateTime)
    sequence = Column(Integer)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    lead = relationship("Lead", back_populates="events")

    __table_args__ = (
        Index(
            "ix_scoring_events_lead_processed_ts",
            "lead_id",
            "processed",
            "timestamp",
            "sequence",
        ),
        UniqueConstraint("lead_id", "sequence", name="uq_scoring_events_lead_sequence"),
    )
