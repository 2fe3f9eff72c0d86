"""Recommendation generator request/response schemas."""
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime


class Coordinates(BaseModel):
    """Latitude/longitude pair."""
    lat: float
    lng: float


class DistanceInfo(BaseModel):
    """Travel estimate for one participant."""
    participant: str = Field(..., description="Participant nickname")
    participant_address: Optional[str] = Field(None, description="Participant address")
    coordinates: Optional[Coordinates] = Field(None, description="Participant coordinates")
    estimate: str = Field(..., description="Distance estimate")
    transport: str = Field(..., description="Likely transport mode")
    time: Optional[str] = Field(None, description="Estimated travel time")


class GeneratedRecommendation(BaseModel):
    """One candidate location as returned by the generator."""
    rank: int = Field(..., ge=1, le=3, description="Rank (1-3)")
    name: str = Field(..., description="Location name")
    type: str = Field(..., description="Type of location (mall, cafe, park, ...)")
    description: str = Field(..., description="Why this place fits the group")
    fairness_analysis: str = Field(..., description="How travel burden stays balanced")
    coordinates: Optional[Coordinates] = None
    distances: List[DistanceInfo] = Field(default_factory=list)
    facilities: List[str] = Field(default_factory=list)
    suitability_score: float = Field(..., description="Suitability score (0-10)")


class ParticipantLocation(BaseModel):
    """Participant as seen by the generator."""
    nickname: str
    address: str


class GenerationRequest(BaseModel):
    """Input to the recommendation generator."""
    title: str
    purpose: str
    event_time: Optional[datetime] = None
    special_requirements: Optional[str] = None
    participants: List[ParticipantLocation]


class GenerationResponse(BaseModel):
    """Successful generator output."""
    analysis: str
    recommendations: List[GeneratedRecommendation]


class LLMRecommendationPayload(BaseModel):
    """Raw model output: either recommendations or a structured error."""
    analysis: Optional[str] = None
    recommendations: Optional[List[GeneratedRecommendation]] = None
    error: Optional[bool] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    suggestions: Optional[str] = None
