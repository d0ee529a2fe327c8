"""Request/response schemas for suggestion endpoints."""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StartSuggestionRequest(BaseModel):
    """Body of ``POST .../suggestions/today/start``."""

    workout_id: str = Field(
        min_length=1, max_length=36, description="Workout created by the client"
    )


class SuggestionResponse(BaseModel):
    """A stored daily suggestion."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    date: date
    request: dict[str, Any]
    rationale: list[str]
    workout_id: str | None = None
    source: str
    created_at: datetime | None = None
