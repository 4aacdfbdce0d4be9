"""Event-specific Pydantic schemas (ingestion, processing results)."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from app.schemas.common import ScoringOutcome, SuccessResponse


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class ScoringEventIn(BaseModel):
    """A single interaction event as submitted by a producer."""

    event_id: str = Field(..., min_length=1, max_length=255)
    event_type: str = Field(..., min_length=1, max_length=50)
    lead_id: UUID
    timestamp: datetime = Field(default_factory=_utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("event_id")
    @classmethod
    def strip_event_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("event_id cannot be blank")
        return value

    @field_validator("event_type")
    @classmethod
    def validate_event_type(cls, value: str) -> str:
        """Accept only the built-in types plus ``EXTRA_EVENT_TYPES``."""
        from app.core.config import settings

        allowed = settings.event_types
        if value not in allowed:
            raise ValueError(
                f"event_type must be one of: {', '.join(sorted(allowed))}"
            )
        return value

    @field_validator("timestamp", mode="before")
    @classmethod
    def default_missing_timestamp(cls, value: Any) -> Any:
        # An explicit null means "now", same as omitting the field
        return _utcnow() if value is None else value

    @field_validator("timestamp")
    @classmethod
    def normalise_timestamp(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @field_validator("metadata", mode="before")
    @classmethod
    def default_missing_metadata(cls, value: Any) -> Any:
        return {} if value is None else value


class ScoringEventRequest(ScoringEventIn):
    """Request body for POST /api/v1/events."""

    sync: bool = False

    def to_event(self) -> ScoringEventIn:
        return ScoringEventIn(**self.model_dump(exclude={"sync"}))


class ScoringBatchRequest(BaseModel):
    """Request body for POST /api/v1/events/batch.

    Size limits are enforced by ``EventValidator.validate_batch_size`` so
    that the configured maximum is read at request time.
    """

    events: List[ScoringEventIn]
    sync: bool = False


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class EventProcessingResult(SuccessResponse):
    """Outcome of applying one event to one lead.

    ``outcome`` is the tagged variant; the ``duplicate`` and
    ``out_of_order`` flags mirror it for clients that only check booleans.
    """

    outcome: ScoringOutcome
    duplicate: bool = False
    out_of_order: bool = False
    event_id: str
    lead_id: Optional[UUID] = None
    event_type: Optional[str] = None
    previous_score: Optional[int] = None
    new_score: Optional[int] = None
    change: Optional[int] = None
    message: str = ""


class BatchEventError(BaseModel):
    event_id: str
    error: str


class BatchProcessingResult(BaseModel):
    """Aggregate counts for an inline batch."""

    processed: int = 0
    duplicates: int = 0
    out_of_order: int = 0
    failed: int = 0
    errors: List[BatchEventError] = Field(default_factory=list)


class ScoringEventOut(BaseModel):
    """A ledgered event as stored."""

    model_config = ConfigDict(from_attributes=True)

    event_id: str
    event_type: str
    lead_id: UUID
    timestamp: datetime
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("event_metadata", "metadata"),
    )
    processed: bool
    processed_at: Optional[datetime] = None
    sequence: Optional[int] = None
