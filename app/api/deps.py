"""API-layer dependency functions.

Re-exports all dependency factories from ``app.dependencies`` so that
endpoint modules only need to import from ``app.api.deps``.
"""

from app.dependencies import (
    # Repository factories
    get_lead_repo,
    get_event_repo,
    get_history_repo,
    get_scoring_rule_repo,
    get_rule_store,
    # Service factories
    get_services,
    get_scoring_engine,
    get_recalculation_engine,
    get_event_queue,
)

__all__ = [
    "get_lead_repo",
    "get_event_repo",
    "get_history_repo",
    "get_scoring_rule_repo",
    "get_rule_store",
    "get_services",
    "get_scoring_engine",
    "get_recalculation_engine",
    "get_event_queue",
]
