"""Vote Pydantic schemas."""
from pydantic import BaseModel, Field, field_validator
from typing import List
from where2meet.backend.schemas.common import sanitize_input


class VoteRequest(BaseModel):
    """Body for casting or removing a vote."""
    nickname: str = Field(..., min_length=1, max_length=20)

    @field_validator("nickname", mode="before")
    @classmethod
    def _sanitize(cls, value):
        return sanitize_input(value)


class RecommendationTally(BaseModel):
    """Vote count for a single recommendation."""
    vote_count: int
    voters: List[str]
    has_current_user_voted: bool


class VoteSummary(RecommendationTally):
    """Per-recommendation entry of the event tally."""
    recommendation_id: int
    location_name: str


class VoteTally(BaseModel):
    """Event-wide tally."""
    recommendations: List[VoteSummary]
    total_votes: int
    participant_count: int
