from enum import Enum
from pydantic import BaseModel


class EventType(str, Enum):
    email_open = "email_open"
    page_view = "page_view"
    form_submission = "form_submission"
    demo_request = "demo_request"
    purchase = "purchase"


class LeadStatus(str, Enum):
    new = "new"
    contacted = "contacted"
    qualified = "qualified"
    converted = "converted"
    lost = "lost"


class JobState(str, Enum):
    waiting = "waiting"
    active = "active"
    completed = "completed"
    failed = "failed"
    delayed = "delayed"


class ScoringOutcome(str, Enum):
    applied = "applied"
    out_of_order = "out_of_order"
    duplicate = "duplicate"


class SuccessResponse(BaseModel):
    """Generic success response base."""

    success: bool = True
