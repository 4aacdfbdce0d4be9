from sqlalchemy import (
    CheckConstraint,
    Column,
    Index,
    Integer,
    JSON,
    String,
    Text,
    Uuid,
)

from app.core.constants import JOB_STATE_CHECK_CLAUSE
from app.models.base import Base, UTCDateTime, utcnow


class ScoringJob(Base):
    """Durable work item delivering one event to the scoring engine.

    ``job_id`` is the event id, which makes enqueueing idempotent.
    ``lead_id`` is deliberately not a foreign key: events for unknown
    leads are accepted, retried and finally dead-lettered.
    """

    __tablename__ = "scoring_jobs"
    job_id = Column(String(255), primary_key=True)
    lead_id = Column(Uuid(as_uuid=True), nullable=False)
    event_type = Column(String(50), nullable=False)
    payload = Column(JSON, nullable=False)
    priority = Column(Integer, nullable=False)
    state = Column(String(20), nullable=False, default="waiting")
    attempts_made = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False)
    next_run_at = Column(UTCDateTime, nullable=False, default=utcnow)
    failed_reason = Column(Text)
    return_value = Column(JSON)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    processed_on = Column(UTCDateTime)
    finished_on = Column(UTCDateTime)

    __table_args__ = (
        Index(
            "ix_scoring_jobs_claim",
            "state",
            "priority",
            "next_run_at",
            "created_at",
        ),
        CheckConstraint(JOB_STATE_CHECK_CLAUSE, name="ck_scoring_job_state"),
        CheckConstraint("attempts_made >= 0", name="ck_scoring_job_attempts"),
    )
