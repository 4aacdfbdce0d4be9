from typing import Any, Dict, Sequence

from pydantic import ValidationError

from app.core.exceptions import BatchLimitError, EventValidationError
from app.schemas.event import ScoringEventIn


class EventValidator:
    """Checks applied before an event may enter the queue."""

    @staticmethod
    def validate_batch_size(events: Sequence[Any], max_size: int) -> None:
        """Reject an empty batch or one larger than *max_size*."""
        if not events:
            raise BatchLimitError("Events array cannot be empty")
        if len(events) > max_size:
            raise BatchLimitError(
                f"Maximum {max_size} events allowed per batch, got {len(events)}"
            )

    @staticmethod
    def parse_event(data: Dict[str, Any]) -> ScoringEventIn:
        """Turn a raw payload into a validated event."""
        try:
            return ScoringEventIn.model_validate(data)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'event'}: {err['msg']}"
                for err in exc.errors()
            )
            raise EventValidationError(f"Invalid event payload: {problems}") from exc
