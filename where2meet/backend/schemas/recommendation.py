"""Recommendation, retry and finalize schemas."""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Optional
from datetime import datetime
from where2meet.backend.db.models import EventStatus
from where2meet.backend.schemas.common import sanitize_input


class RecommendationOut(BaseModel):
    """Schema for a persisted recommendation."""
    id: int
    location_name: Optional[str] = None
    location_type: Optional[str] = None
    description: Optional[str] = None
    fairness_analysis: Optional[str] = None
    suitability_score: Optional[float] = None
    rank: int
    coordinates: Optional[Dict[str, float]] = None
    facilities: List[str] = Field(default_factory=list)
    distances: List[Dict[str, Any]] = Field(default_factory=list)
    generated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("facilities", "distances", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return value or []


class RecommendationList(BaseModel):
    """Schema for list of recommendations."""
    recommendations: List[RecommendationOut]


class CreatorRequest(BaseModel):
    """Body for creator-only operations."""
    creator_nickname: str = Field(..., min_length=1, max_length=20)

    @field_validator("creator_nickname", mode="before")
    @classmethod
    def _sanitize(cls, value):
        return sanitize_input(value)


class RetryResult(BaseModel):
    """Schema returned by a successful manual retry."""
    message: str
    status: EventStatus


class FinalizeRequest(CreatorRequest):
    """Body for finalizing an event."""
    final_location_id: int = Field(..., gt=0)


class FinalizeResult(BaseModel):
    """Schema returned after finalizing."""
    final_location: RecommendationOut
    voting_ended_at: datetime
    status: EventStatus
