from typing import Any, Dict, List


DEFAULT_SCORING_RULES: List[Dict[str, Any]] = [
    {
        "event_type": "email_open",
        "points": 10,
        "description": "Lead opened an email",
    },
    {
        "event_type": "page_view",
        "points": 5,
        "description": "Lead viewed a page",
    },
    {
        "event_type": "form_submission",
        "points": 20,
        "description": "Lead submitted a form",
    },
    {
        "event_type": "demo_request",
        "points": 50,
        "description": "Lead requested a demo",
    },
    {
        "event_type": "purchase",
        "points": 100,
        "description": "Lead made a purchase",
    },
]
