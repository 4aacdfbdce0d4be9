from typing import Dict, FrozenSet

from app.schemas.common import EventType, JobState, LeadStatus

BUILTIN_EVENT_TYPES: FrozenSet[str] = frozenset(t.value for t in EventType)

LEAD_STATUSES: FrozenSet[str] = frozenset(s.value for s in LeadStatus)

LEAD_STATUS_CHECK_CLAUSE: str = (
    f"status IN ({', '.join(repr(s.value) for s in LeadStatus)})"
)

JOB_STATES: FrozenSet[str] = frozenset(s.value for s in JobState)

JOB_STATE_CHECK_CLAUSE: str = (
    f"state IN ({', '.join(repr(s.value) for s in JobState)})"
)

# Jobs in these states can still be picked up by a worker
CLAIMABLE_JOB_STATES: FrozenSet[str] = frozenset(
    {JobState.waiting.value, JobState.delayed.value}
)

MIN_SCORE: int = 0

# Queue priority per event type; lower value is scheduled first.  This is a
# throughput hint only; any delivery order converges to the same score.
EVENT_PRIORITIES: Dict[str, int] = {
    EventType.purchase.value: 1,
    EventType.demo_request.value: 2,
    EventType.form_submission.value: 3,
    EventType.email_open.value: 4,
    EventType.page_view.value: 5,
}
DEFAULT_EVENT_PRIORITY: int = 5

# WebSocket / pub-sub channel names for score notifications
SCORE_UPDATED_CHANNEL: str = "score:updated"
LEAD_SCORE_UPDATED_EVENT: str = "lead:score:updated"
LEAD_CHANNEL_PREFIX: str = "lead:"
