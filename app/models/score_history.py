from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.models.base import Base, UTCDateTime


class ScoreHistory(Base):
    """Append-only score ledger entry.

    The primary key is ``(lead_id, sequence)`` where ``sequence`` is the
    owning event's ledger sequence, so a rebuilt ledger reproduces the
    exact same rows.
    """

    __tablename__ = "score_history"
    lead_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("leads.lead_id", ondelete="CASCADE"),
        primary_key=True,
    )
    sequence = Column(Integer, primary_key=True)
    score = Column(Integer, nullable=False)
    previous_score = Column(Integer, nullable=False)
    change = Column(Integer, nullable=False)
    event_id = Column(String(255), nullable=False)
    event_type = Column(String(50), nullable=False)
    reason = Column(String(255), nullable=False)
    timestamp = Column(UTCDateTime, nullable=False)

    lead = relationship("Lead", back_populates="history")

    __table_args__ = (
        Index("ix_score_history_lead_ts_seq", "lead_id", "timestamp", "sequence"),
        CheckConstraint("score >= 0", name="ck_history_score_non_negative"),
        CheckConstraint("previous_score >= 0", name="ck_history_previous_non_negative"),
    )
