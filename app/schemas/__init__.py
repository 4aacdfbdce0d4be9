"""Pydantic schemas package – re-exports for convenience."""

# Common enums
from app.schemas.common import (
    EventType as EventType,
    LeadStatus as LeadStatus,
    JobState as JobState,
    ScoringOutcome as ScoringOutcome,
    SuccessResponse as SuccessResponse,
)

# Event schemas
from app.schemas.event import (
    ScoringEventIn as ScoringEventIn,
    ScoringEventRequest as ScoringEventRequest,
    ScoringBatchRequest as ScoringBatchRequest,
    EventProcessingResult as EventProcessingResult,
    BatchEventError as BatchEventError,
    BatchProcessingResult as BatchProcessingResult,
    ScoringEventOut as ScoringEventOut,
)

# Lead schemas
from app.schemas.lead import (
    LeadOut as LeadOut,
    ScoreHistoryOut as ScoreHistoryOut,
    RecalculationResult as RecalculationResult,
    ReplayResponse as ReplayResponse,
)

# Rule schemas
from app.schemas.rule import (
    ScoringRuleOut as ScoringRuleOut,
    ScoringRuleUpdate as ScoringRuleUpdate,
)

# Queue schemas
from app.schemas.queue import (
    QueuedEventResponse as QueuedEventResponse,
    QueuedBatchResponse as QueuedBatchResponse,
    QueueStats as QueueStats,
    JobStatusResponse as JobStatusResponse,
    CleanResponse as CleanResponse,
)

# Notification schemas
from app.schemas.notification import ScoreUpdate as ScoreUpdate
