"""Voting API endpoints."""
from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from where2meet.backend.db.session import get_db
from where2meet.backend.schemas.common import ApiResponse, ok
from where2meet.backend.schemas.vote import VoteRequest
from where2meet.backend.services.voting import VotingLedgerService

router = APIRouter()
voting_service = VotingLedgerService()


@router.post("/events/{event_id}/recommendations/{recommendation_id}/vote", response_model=ApiResponse)
async def cast_vote(
    event_id: str,
    recommendation_id: int,
    request: VoteRequest,
    db: Session = Depends(get_db)
):
    """Vote for a recommendation, replacing any earlier vote."""
    tally = voting_service.cast_vote(db, event_id, recommendation_id, request.nickname)
    return ok(tally)


@router.delete("/events/{event_id}/recommendations/{recommendation_id}/vote", response_model=ApiResponse)
async def remove_vote(
    event_id: str,
    recommendation_id: int,
    request: VoteRequest,
    db: Session = Depends(get_db)
):
    """Withdraw a vote."""
    tally = voting_service.remove_vote(db, event_id, recommendation_id, request.nickname)
    return ok(tally)


@router.get("/events/{event_id}/votes", response_model=ApiResponse)
async def get_vote_tally(
    event_id: str,
    nickname: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Vote counts for every recommendation of the event."""
    return ok(voting_service.tally(db, event_id, nickname))
