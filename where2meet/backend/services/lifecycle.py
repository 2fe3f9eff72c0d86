"""Event lifecycle state machine and recommendation workflow."""
import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker
from where2meet.backend.core.config import settings
from where2meet.backend.core.errors import (
    ConflictError,
    GenerationFailedError,
    NotFoundError,
    Where2MeetError,
)
from where2meet.backend.core.security import require_creator
from where2meet.backend.db.models import (
    Event,
    EventStatus,
    Participant,
    Recommendation,
    Vote,
    utcnow,
)
from where2meet.backend.schemas.ai import (
    GenerationRequest,
    GenerationResponse,
    GeneratedRecommendation,
    ParticipantLocation,
)
from where2meet.backend.services.audit import AuditService
from where2meet.backend.services.expiration import ExpirationPolicy
from where2meet.backend.services.recommender import RecommendationGenerator
from where2meet.backend.services.voting import vote_counts

logger = logging.getLogger(__name__)

RECOMMENDATION_COUNT = 3


class GenerationOutcome(BaseModel):
    """Result of one run of the automatic generation task."""
    event_id: str
    succeeded: bool
    skipped: bool = False
    error_code: Optional[str] = None
    message: Optional[str] = None


FailureHook = Callable[[GenerationOutcome, Session], None]


class EventLifecycleService:
    """
    Owns every status change of an event.

    Transitions are applied as compare-and-set updates keyed on the current
    status, so two concurrent requests can never both move the same event.
    """

    TRANSITIONS: Dict[EventStatus, Set[EventStatus]] = {
        EventStatus.WAITING: {EventStatus.READY, EventStatus.EXPIRED},
        EventStatus.READY: {EventStatus.VOTING, EventStatus.EXPIRED},
        EventStatus.VOTING: {EventStatus.FINALIZED, EventStatus.EXPIRED},
        EventStatus.FINALIZED: {EventStatus.EXPIRED},
        EventStatus.EXPIRED: set(),
    }

    def __init__(
        self,
        generator: Optional[RecommendationGenerator] = None,
        expiration: Optional[ExpirationPolicy] = None,
        audit: Optional[AuditService] = None,
        failure_hook: Optional[FailureHook] = None,
        timeout_seconds: Optional[float] = None,
        enforce_plurality: Optional[bool] = None
    ):
        self.generator = generator
        self.expiration = expiration or ExpirationPolicy()
        self.audit = audit or AuditService()
        self.failure_hook = failure_hook or self._audit_failure
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.generation_timeout_seconds
        )
        self.enforce_plurality = (
            enforce_plurality if enforce_plurality is not None else settings.enforce_plurality_on_finalize
        )

    # State machine

    @classmethod
    def can_transition(cls, current: EventStatus, target: EventStatus) -> bool:
        return target in cls.TRANSITIONS.get(EventStatus(current), set())

    def transition(
        self,
        db: Session,
        event_id: str,
        source: EventStatus,
        target: EventStatus,
        now: Optional[datetime] = None,
        **values
    ) -> bool:
        """
        Move an event from ``source`` to ``target`` if it is still in ``source``.

        Does not commit; the caller owns the transaction.

        Returns:
            True if this call performed the transition
        """
        if not self.can_transition(source, target):
            raise ConflictError(
                f"Illegal transition {EventStatus(source).value} -> {EventStatus(target).value}",
                code="ILLEGAL_TRANSITION"
            )
        now = now or utcnow()
        changes = {Event.status: target, Event.updated_at: now}
        changes.update({getattr(Event, name): value for name, value in values.items()})
        query = db.query(Event).filter(Event.id == event_id, Event.status == source)
        if target != EventStatus.EXPIRED:
            query = query.filter(Event.expires_at > now)
        rows = query.update(changes, synchronize_session=False)
        return rows == 1

    def mark_ready_if_full(self, db: Session, event: Event, now: Optional[datetime] = None) -> bool:
        """
        WAITING -> READY when the participant count equals the expected headcount.

        The count comparison is part of the same conditional update, so only
        the join that completes the group can win it.
        """
        now = now or utcnow()
        participant_count = (
            select(func.count(Participant.id))
            .where(Participant.event_id == event.id)
            .scalar_subquery()
        )
        rows = (
            db.query(Event)
            .filter(
                Event.id == event.id,
                Event.status == EventStatus.WAITING,
                Event.expires_at > now,
                participant_count == Event.expected_participants,
            )
            .update({Event.status: EventStatus.READY, Event.updated_at: now}, synchronize_session=False)
        )
        if rows == 1:
            logger.info("Event %s transitioned to READY (%s participants)", event.id, event.expected_participants)
        return rows == 1

    # Reads

    def get_event(self, db: Session, event_id: str, now: Optional[datetime] = None) -> Event:
        return self.expiration.get_live_event(db, event_id, now=now)

    def find_by_code(self, db: Session, short_code: str, now: Optional[datetime] = None) -> Event:
        return self.expiration.get_live_event_by_code(db, short_code, now=now)

    def list_recommendations(self, db: Session, event_id: str) -> List[Recommendation]:
        """Recommendations of a live event ordered by rank."""
        return self.expiration.get_live_event(db, event_id).recommendations

    # Recommendation generation

    @staticmethod
    def build_generation_request(event: Event) -> GenerationRequest:
        """Generator input from event metadata and participants in join order."""
        return GenerationRequest(
            title=event.title,
            purpose=event.purpose.value if event.purpose else "other",
            event_time=event.event_time,
            special_requirements=event.special_requirements,
            participants=[
                ParticipantLocation(nickname=p.nickname, address=p.address)
                for p in event.participants
            ],
        )

    @staticmethod
    def normalize_recommendations(response: GenerationResponse) -> List[GeneratedRecommendation]:
        """Keep the three best-ranked candidates, renumbered 1..3."""
        ranked = sorted(response.recommendations, key=lambda r: r.rank)[:RECOMMENDATION_COUNT]
        if len(ranked) < RECOMMENDATION_COUNT:
            raise GenerationFailedError(
                f"Expected {RECOMMENDATION_COUNT} recommendations, got {len(ranked)}",
                code="NO_RESULTS"
            )
        return [
            rec.model_copy(update={
                "rank": position,
                "suitability_score": min(max(rec.suitability_score, 0.0), 10.0),
            })
            for position, rec in enumerate(ranked, start=1)
        ]

    async def generate(self, request: GenerationRequest) -> List[GeneratedRecommendation]:
        """Call the generator with a bounded timeout; every failure becomes GenerationFailedError."""
        if self.generator is None:
            raise GenerationFailedError("No recommendation generator configured", code="LLM_ERROR")
        try:
            response = await asyncio.wait_for(
                self.generator.generate(request),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            raise GenerationFailedError(
                f"Recommendation generation timed out after {self.timeout_seconds}s",
                code="GENERATION_TIMEOUT"
            )
        except Where2MeetError:
            raise
        except Exception as e:
            raise GenerationFailedError(f"Recommendation generation failed: {e}", code="LLM_ERROR")

        if not response or not response.recommendations:
            raise GenerationFailedError("No recommendations returned", code="NO_RESULTS")
        return self.normalize_recommendations(response)

    def apply_recommendations(
        self,
        db: Session,
        event_id: str,
        recommendations: List[GeneratedRecommendation],
        now: Optional[datetime] = None
    ) -> None:
        """
        Replace the event's recommendations and open voting in one transaction.

        Raises:
            ConflictError: If the event left READY while generation was running
        """
        now = now or utcnow()
        try:
            if not self.transition(
                db, event_id, EventStatus.READY, EventStatus.VOTING, now=now,
                voting_started_at=now, last_generation_error=None
            ):
                raise ConflictError(
                    "Event is no longer waiting for recommendations",
                    code="EVENT_NOT_READY"
                )

            db.query(Vote).filter(Vote.event_id == event_id).delete(synchronize_session=False)
            db.query(Recommendation).filter(Recommendation.event_id == event_id).delete(
                synchronize_session=False
            )
            for rec in recommendations:
                db.add(Recommendation(
                    event_id=event_id,
                    location_name=rec.name,
                    location_type=rec.type,
                    description=rec.description,
                    fairness_analysis=rec.fairness_analysis,
                    suitability_score=rec.suitability_score,
                    rank=rec.rank,
                    coordinates=rec.coordinates.model_dump() if rec.coordinates else None,
                    facilities=list(rec.facilities),
                    distances=[d.model_dump(exclude_none=True) for d in rec.distances],
                    generated_at=now,
                ))

            self.audit.log_action(
                action="recommendations_generated",
                event_id=event_id,
                actor=None,
                details={"locations": [rec.name for rec in recommendations]},
                db=db,
                commit=False
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.expire_all()
        logger.info("Event %s transitioned to VOTING with %s recommendations", event_id, len(recommendations))

    async def retry_recommendations(self, db: Session, event_id: str, creator_nickname: str) -> Event:
        """
        Creator-initiated regeneration for an event stuck in READY.

        Raises:
            NotFoundError: Event missing or expired
            ConflictError: Event not READY, or group incomplete
            NotAuthorizedError: Nickname is not the creator's
            GenerationFailedError: Generator failed; nothing is written
        """
        event = self.expiration.get_live_event(db, event_id)
        if event.status != EventStatus.READY:
            raise ConflictError("Event is not waiting for recommendations", code="EVENT_NOT_READY")
        if len(event.participants) != event.expected_participants:
            raise ConflictError("Not all participants have joined", code="PARTICIPANTS_NOT_COMPLETE")
        require_creator(event, creator_nickname)

        request = self.build_generation_request(event)
        # Release the read snapshot before the slow generator call
        db.rollback()

        logger.info("Manual retry: generating recommendations for event %s", event_id)
        try:
            recommendations = await self.generate(request)
        except GenerationFailedError as e:
            logger.warning("Manual retry for event %s failed: %s", event_id, e.code)
            raise
        self.apply_recommendations(db, event_id, recommendations)
        return self.expiration.get_live_event(db, event_id)

    async def run_automatic_generation(
        self,
        session_factory: sessionmaker,
        event_id: str
    ) -> GenerationOutcome:
        """
        Background half of a threshold-crossing join.

        Never raises: failures leave the event in READY, are written back as
        ``last_generation_error`` and handed to the failure hook.
        """
        db = session_factory()
        try:
            try:
                event = self.expiration.get_live_event(db, event_id)
            except NotFoundError:
                logger.info("Skipping automatic generation for missing or expired event %s", event_id)
                return GenerationOutcome(event_id=event_id, succeeded=False, skipped=True)

            try:
                if event.status != EventStatus.READY or len(event.participants) < 2:
                    logger.info("Skipping automatic generation for event %s (status %s)", event_id, event.status)
                    return GenerationOutcome(event_id=event_id, succeeded=False, skipped=True)

                request = self.build_generation_request(event)
                db.rollback()

                logger.info("Generating recommendations for event %s", event_id)
                recommendations = await self.generate(request)
                self.apply_recommendations(db, event_id, recommendations)
                return GenerationOutcome(event_id=event_id, succeeded=True)
            except Where2MeetError as e:
                if isinstance(e, ConflictError) and e.code == "EVENT_NOT_READY":
                    # A manual retry opened voting first
                    logger.info("Event %s left READY during automatic generation; discarding result", event_id)
                    return GenerationOutcome(
                        event_id=event_id, succeeded=False, skipped=True, error_code=e.code, message=e.message
                    )
                outcome = GenerationOutcome(
                    event_id=event_id, succeeded=False, error_code=e.code, message=e.message
                )
            except Exception as e:
                logger.exception("Unexpected error generating recommendations for event %s", event_id)
                outcome = GenerationOutcome(
                    event_id=event_id, succeeded=False, error_code="LLM_ERROR", message=str(e)
                )

            db.rollback()
            logger.error(
                "Failed to generate recommendations for event %s: %s %s",
                event_id, outcome.error_code, outcome.message
            )
            self._record_failure(db, outcome)
            return outcome
        finally:
            db.close()

    def _record_failure(self, db: Session, outcome: GenerationOutcome) -> None:
        """Leave an observable trace of a failed automatic run."""
        try:
            db.query(Event).filter(
                Event.id == outcome.event_id,
                Event.status == EventStatus.READY
            ).update(
                {Event.last_generation_error: outcome.error_code, Event.updated_at: utcnow()},
                synchronize_session=False
            )
            db.commit()
            self.failure_hook(outcome, db)
        except Exception:
            db.rollback()
            logger.exception("Could not record generation failure for event %s", outcome.event_id)

    def _audit_failure(self, outcome: GenerationOutcome, db: Session) -> None:
        self.audit.log_action(
            action="generation_failed",
            event_id=outcome.event_id,
            actor=None,
            details={"error_code": outcome.error_code, "message": outcome.message},
            db=db
        )

    # Finalization and expiry

    def finalize(
        self,
        db: Session,
        event_id: str,
        recommendation_id: int,
        creator_nickname: str,
        now: Optional[datetime] = None
    ) -> Event:
        """
        VOTING -> FINALIZED with the organizer's chosen recommendation.

        Raises:
            NotFoundError: Event missing/expired or recommendation not in this event
            ConflictError: Event not in VOTING, or (with plurality enforcement)
                the choice is not a top-voted recommendation
            NotAuthorizedError: Nickname is not the creator's
        """
        now = now or utcnow()
        event = self.expiration.get_live_event(db, event_id, now=now, for_update=True)
        if event.status != EventStatus.VOTING:
            code = "VOTING_ENDED" if event.status == EventStatus.FINALIZED else "VOTING_NOT_STARTED"
            raise ConflictError("Event is not open for voting", code=code)
        require_creator(event, creator_nickname)

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

        if self.enforce_plurality:
            counts = vote_counts(db, event_id)
            chosen = counts.get(recommendation_id, 0)
            if chosen == 0 or chosen < max(counts.values(), default=0):
                raise ConflictError(
                    "Only a recommendation with the most votes can be finalized",
                    code="NOT_PLURALITY_WINNER",
                    details={"vote_counts": counts}
                )

        try:
            if not self.transition(
                db, event_id, EventStatus.VOTING, EventStatus.FINALIZED, now=now,
                final_location_id=recommendation_id, voting_ended_at=now
            ):
                raise ConflictError("Event is not open for voting", code="VOTING_ENDED")
            self.audit.log_action(
                action="event_finalized",
                event_id=event_id,
                actor=creator_nickname,
                details={"final_location_id": recommendation_id},
                db=db,
                commit=False
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(event)
        logger.info("Event %s finalized at recommendation %s", event_id, recommendation_id)
        return event

    def expire_events(self, db: Session, now: Optional[datetime] = None) -> int:
        """Persist EXPIRED for every event past its TTL. Returns the number updated."""
        now = now or utcnow()
        expired_ids = [
            row.id for row in
            db.query(Event.id)
            .filter(Event.expires_at <= now, Event.status != EventStatus.EXPIRED)
            .all()
        ]
        updated = 0
        for event_id in expired_ids:
            status = db.query(Event.status).filter(Event.id == event_id).scalar()
            if status is not None and self.transition(db, event_id, status, EventStatus.EXPIRED, now=now):
                updated += 1
        if updated:
            self.audit.log_action(
                action="events_expired",
                event_id=None,
                actor=None,
                details={"count": updated},
                db=db,
                commit=False
            )
        db.commit()
        logger.info("Marked %s events as EXPIRED", updated)
        return updated
