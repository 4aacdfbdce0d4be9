import uuid

from sqlalchemy import (
    Column,
    String,
    Integer,
    CheckConstraint,
    Index,
    Uuid,
)
from sqlalchemy.orm import relationship
from sqlalchemy import text

from app.core.constants import LEAD_STATUS_CHECK_CLAUSE
from app.models.base import Base, UTCDateTime, utcnow


class Lead(Base):
    """Sales prospect carrying a bounded interest score.

    ``current_score`` is written only by the scoring and recalculation
    engines.  ``last_sequence`` hands out the per-lead ledger sequence
    numbers used to break timestamp ties, and ``score_version`` is the
    optimistic concurrency token: every UPDATE is issued as
    ``... WHERE score_version = :expected`` so two writers that both
    missed the row lock cannot both commit.
    """

    __tablename__ = "leads"
    lead_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    company = Column(String(255))
    status = Column(String(20), nullable=False, default="new", server_default="new")
    current_score = Column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    last_sequence = Column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    ledger_version = Column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    score_version = Column(Integer, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow)

    events = relationship(
        "ScoringEvent", back_populates="lead", cascade="all, delete-orphan"
    )
    history = relationship(
        "ScoreHistory", back_populates="lead", cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": score_version}

    __table_args__ = (
        Index("ix_leads_current_score", "current_score"),
        CheckConstraint("current_score >= 0", name="ck_lead_score_non_negative"),
        CheckConstraint(LEAD_STATUS_CHECK_CLAUSE, name="ck_lead_status"),
    )

    def next_sequence(self) -> int:
        """Reserve the next ledger sequence number for this lead."""
        self.last_sequence = (self.last_sequence or 0) + 1
        return self.last_sequence
