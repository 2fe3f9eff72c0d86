"""Event Pydantic schemas."""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional
from datetime import datetime
from where2meet.backend.db.models import EventPurpose, EventStatus
from where2meet.backend.schemas.common import sanitize_input
from where2meet.backend.schemas.participant import ParticipantOut
from where2meet.backend.schemas.recommendation import RecommendationOut


class EventCreate(BaseModel):
    """Schema for creating an event."""
    title: str = Field(..., min_length=1, max_length=50, description="Event name")
    creator_nickname: str = Field(..., min_length=1, max_length=20, description="Organizer nickname")
    creator_address: str = Field(..., min_length=2, max_length=200, description="Organizer address")
    purpose: EventPurpose = Field(..., description="Why the group is meeting")
    event_time: Optional[datetime] = Field(None, description="Planned meeting time")
    special_requirements: Optional[str] = Field(None, max_length=200, description="Free-text requirements")
    expected_participants: int = Field(..., ge=2, le=50, description="Headcount including the organizer")

    @field_validator("title", "creator_nickname", "creator_address", "special_requirements", mode="before")
    @classmethod
    def _sanitize(cls, value):
        return sanitize_input(value)

    @field_validator("special_requirements")
    @classmethod
    def _blank_as_none(cls, value):
        return value or None


class EventCreated(BaseModel):
    """Schema returned after creating an event."""
    event_id: str
    short_code: str
    url: str


class EventSummary(BaseModel):
    """Minimal event info resolved from a short code."""
    event_id: str
    title: str
    short_code: str


class Event(BaseModel):
    """Schema for event response."""
    id: str
    short_code: str
    title: str
    purpose: EventPurpose
    event_time: Optional[datetime] = None
    special_requirements: Optional[str] = None
    status: EventStatus
    expected_participants: int
    voting_started_at: Optional[datetime] = None
    voting_ended_at: Optional[datetime] = None
    final_location_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True)


class EventDetail(BaseModel):
    """Event with its participants, recommendations and final location."""
    event: Event
    participants: List[ParticipantOut]
    recommendations: List[RecommendationOut]
    final_location: Optional[RecommendationOut] = None
