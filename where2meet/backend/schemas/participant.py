"""Participant Pydantic schemas."""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional
from datetime import datetime
from where2meet.backend.schemas.common import sanitize_input


class JoinRequest(BaseModel):
    """Schema for joining an event."""
    nickname: str = Field(..., min_length=1, max_length=20, description="Display name within the event")
    address: str = Field(..., min_length=2, max_length=200, description="Where the participant travels from")

    @field_validator("nickname", "address", mode="before")
    @classmethod
    def _sanitize(cls, value):
        return sanitize_input(value)


class ParticipantOut(BaseModel):
    """Schema for participant response."""
    id: int
    nickname: str
    address: str
    is_creator: bool
    joined_at: datetime

    model_config = ConfigDict(from_attributes=True)


class JoinResult(BaseModel):
    """Outcome of a join, including nickname collision handling."""
    participant: ParticipantOut
    participant_count: int
    should_generate_recommendations: bool
    nickname_modified: bool
    original_nickname: Optional[str] = None
    assigned_nickname: str


class ParticipantList(BaseModel):
    """Schema for list of participants."""
    participants: List[ParticipantOut]
