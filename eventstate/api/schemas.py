"""Request and response schemas for the HTTP surface."""

from typing import Any

from pydantic import BaseModel, Field

# -- Requests --


class EmitEventRequest(BaseModel):
    type: str = Field(min_length=1)
    payload: Any = None
    error: Any = None
    meta: Any = None


# -- Responses --


class HealthResponse(BaseModel):
    status: str
    feed: str
    hydrated: bool
    sequence: int | None = None


class StateResponse(BaseModel):
    state: Any = None
    sequence: int | None = None
