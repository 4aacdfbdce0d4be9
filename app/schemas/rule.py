from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, model_validator
from typing_extensions import Self


class ScoringRuleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    event_type: str
    points: int
    active: bool
    description: Optional[str] = None
    updated_at: Optional[datetime] = None


class ScoringRuleUpdate(BaseModel):
    """Request body for PUT /api/v1/rules/{event_type}.

    Strict types so that ``"10"`` or ``1`` are not silently coerced into
    points or the active flag.
    """

    points: Optional[StrictInt] = None
    active: Optional[StrictBool] = None
    description: Optional[str] = Field(None, max_length=255)

    @model_validator(mode="after")
    def require_a_change(self) -> Self:
        if self.points is None and self.active is None and self.description is None:
            raise ValueError("At least one of points, active or description is required")
        return self
