"""Vote ledger: one live vote per participant per event."""
import logging
from typing import Dict, Optional, Tuple
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from where2meet.backend.core.errors import (
    AlreadyVotedError,
    ConflictError,
    NotFoundError,
)
from where2meet.backend.core.security import require_participant
from where2meet.backend.db.models import Event, EventStatus, Recommendation, Vote
from where2meet.backend.schemas.vote import RecommendationTally, VoteSummary, VoteTally
from where2meet.backend.services.expiration import ExpirationPolicy

logger = logging.getLogger(__name__)

UNKNOWN_LOCATION = "Unknown Location"


def vote_counts(db: Session, event_id: str) -> Dict[int, int]:
    """Votes per recommendation id; recommendations without votes are absent."""
    rows = (
        db.query(Vote.recommendation_id, func.count(Vote.id))
        .filter(Vote.event_id == event_id)
        .group_by(Vote.recommendation_id)
        .all()
    )
    return {recommendation_id: count for recommendation_id, count in rows}


class VotingLedgerService:
    """Casts, switches and removes votes, and computes tallies."""

    def __init__(self, expiration: Optional[ExpirationPolicy] = None):
        self.expiration = expiration or ExpirationPolicy()

    def _load_for_voting(
        self,
        db: Session,
        event_id: str,
        recommendation_id: int,
        nickname: str
    ) -> Tuple[Event, Recommendation]:
        event = self.expiration.get_live_event(db, event_id, for_update=True)
        if event.status != EventStatus.VOTING:
            code = "VOTING_NOT_STARTED" if event.status in (EventStatus.WAITING, EventStatus.READY) else "VOTING_ENDED"
            raise ConflictError("Voting is not open for this event", code=code)
        require_participant(event, nickname)

        recommendation = (
            db.query(Recommendation)
            .filter_by(id=recommendation_id, event_id=event_id)
            .first()
        )
        if not recommendation:
            raise NotFoundError(
                f"Recommendation {recommendation_id} not found",
                code="RECOMMENDATION_NOT_FOUND"
            )
        return event, recommendation

    def recommendation_tally(
        self,
        db: Session,
        recommendation_id: int,
        nickname: Optional[str] = None
    ) -> RecommendationTally:
        """Vote count and ordered voters for a single recommendation."""
        voters = [
            row.voter_nickname for row in
            db.query(Vote.voter_nickname)
            .filter(Vote.recommendation_id == recommendation_id)
            .order_by(Vote.voted_at, Vote.id)
            .all()
        ]
        return RecommendationTally(
            vote_count=len(voters),
            voters=voters,
            has_current_user_voted=nickname is not None and nickname in voters
        )

    def cast_vote(
        self,
        db: Session,
        event_id: str,
        recommendation_id: int,
        nickname: str
    ) -> RecommendationTally:
        """
        Vote for a recommendation, switching away from any previous choice.

        Raises:
            NotFoundError: Event or recommendation missing
            ConflictError: Voting not open, or a concurrent vote won the race
            NotAuthorizedError: Nickname is not a participant
            AlreadyVotedError: The voter already backs this recommendation
        """
        self._load_for_voting(db, event_id, recommendation_id, nickname)

        existing = (
            db.query(Vote)
            .filter_by(event_id=event_id, voter_nickname=nickname)
            .first()
        )
        if existing and existing.recommendation_id == recommendation_id:
            db.rollback()
            raise AlreadyVotedError("You have already voted for this location", code="ALREADY_VOTED")

        try:
            if existing:
                logger.debug("Switching vote in event %s from %s to %s", event_id, existing.recommendation_id, recommendation_id)
                db.delete(existing)
                db.flush()
            db.add(Vote(event_id=event_id, recommendation_id=recommendation_id, voter_nickname=nickname))
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("Another vote by this participant was recorded concurrently", code="CONFLICT")

        logger.debug("Vote cast in event %s for recommendation %s", event_id, recommendation_id)
        return self.recommendation_tally(db, recommendation_id, nickname)

    def remove_vote(
        self,
        db: Session,
        event_id: str,
        recommendation_id: int,
        nickname: str
    ) -> RecommendationTally:
        """Withdraw this voter's vote for the recommendation."""
        self._load_for_voting(db, event_id, recommendation_id, nickname)

        deleted = (
            db.query(Vote)
            .filter_by(event_id=event_id, recommendation_id=recommendation_id, voter_nickname=nickname)
            .delete(synchronize_session=False)
        )
        if not deleted:
            db.rollback()
            raise NotFoundError("No vote to remove", code="VOTE_NOT_FOUND")
        db.commit()

        logger.debug("Vote removed in event %s for recommendation %s", event_id, recommendation_id)
        return self.recommendation_tally(db, recommendation_id, nickname)

    def tally(self, db: Session, event_id: str, nickname: Optional[str] = None) -> VoteTally:
        """Per-recommendation tallies plus event totals."""
        event = self.expiration.get_live_event(db, event_id)

        summaries = []
        for recommendation in event.recommendations:
            result = self.recommendation_tally(db, recommendation.id, nickname)
            summaries.append(VoteSummary(
                recommendation_id=recommendation.id,
                location_name=recommendation.location_name or UNKNOWN_LOCATION,
                **result.model_dump()
            ))

        return VoteTally(
            recommendations=summaries,
            total_votes=sum(s.vote_count for s in summaries),
            participant_count=len(event.participants)
        )
