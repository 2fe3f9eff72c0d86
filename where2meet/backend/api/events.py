"""Event, participant and recommendation API endpoints."""
from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session, sessionmaker
from where2meet.backend.core.config import settings
from where2meet.backend.db.session import get_db, get_session_factory
from where2meet.backend.schemas.common import ApiResponse, ok
from where2meet.backend.schemas.event import (
    Event as EventSchema,
    EventCreate,
    EventCreated,
    EventDetail,
    EventSummary,
)
from where2meet.backend.schemas.participant import JoinRequest, ParticipantList, ParticipantOut
from where2meet.backend.schemas.recommendation import (
    CreatorRequest,
    FinalizeRequest,
    FinalizeResult,
    RecommendationList,
    RecommendationOut,
    RetryResult,
)
from where2meet.backend.services.admission import ParticipantAdmissionService
from where2meet.backend.services.lifecycle import EventLifecycleService
from where2meet.backend.services.recommender import RecommendationGenerator, get_recommendation_generator

router = APIRouter()


def get_lifecycle(
    generator: RecommendationGenerator = Depends(get_recommendation_generator)
) -> EventLifecycleService:
    """Lifecycle service bound to the configured generator."""
    return EventLifecycleService(generator=generator)


@router.post("/events", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_event(
    event: EventCreate,
    db: Session = Depends(get_db),
    lifecycle: EventLifecycleService = Depends(get_lifecycle)
):
    """Create a new event with its organizer as first participant."""
    admission = ParticipantAdmissionService(lifecycle=lifecycle)
    db_event = admission.create_event(db, event)

    return ok(EventCreated(
        event_id=db_event.id,
        short_code=db_event.short_code,
        url=f"{settings.base_url.rstrip('/')}/event/{db_event.id}"
    ))


@router.get("/events/code/{short_code}", response_model=ApiResponse)
async def find_event_by_code(
    short_code: str,
    db: Session = Depends(get_db),
    lifecycle: EventLifecycleService = Depends(get_lifecycle)
):
    """Resolve a 6-character share code."""
    event = lifecycle.find_by_code(db, short_code)
    return ok(EventSummary(event_id=event.id, title=event.title, short_code=event.short_code))


@router.get("/events/{event_id}", response_model=ApiResponse)
async def get_event(
    event_id: str,
    db: Session = Depends(get_db),
    lifecycle: EventLifecycleService = Depends(get_lifecycle)
):
    """Get an event with participants, recommendations and final location."""
    event = lifecycle.get_event(db, event_id)
    event_out = EventSchema.model_validate(event).model_copy(
        update={"status": lifecycle.expiration.effective_status(event)}
    )

    return ok(EventDetail(
        event=event_out,
        participants=[ParticipantOut.model_validate(p) for p in event.participants],
        recommendations=[RecommendationOut.model_validate(r) for r in event.recommendations],
        final_location=RecommendationOut.model_validate(event.final_location) if event.final_location else None
    ))


@router.post("/events/{event_id}/participants", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def join_event(
    event_id: str,
    request: JoinRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
    lifecycle: EventLifecycleService = Depends(get_lifecycle)
):
    """Join an event; the join that completes the group schedules recommendation generation."""
    admission = ParticipantAdmissionService(lifecycle=lifecycle)
    result = admission.join_event(db, event_id, request.nickname, request.address)

    if result.should_generate_recommendations:
        background_tasks.add_task(lifecycle.run_automatic_generation, session_factory, event_id)

    return ok(result)


@router.get("/events/{event_id}/participants", response_model=ApiResponse)
async def list_participants(
    event_id: str,
    db: Session = Depends(get_db),
    lifecycle: EventLifecycleService = Depends(get_lifecycle)
):
    """List participants in join order."""
    admission = ParticipantAdmissionService(lifecycle=lifecycle)
    participants = admission.list_participants(db, event_id)
    return ok(ParticipantList(participants=[ParticipantOut.model_validate(p) for p in participants]))


@router.get("/events/{event_id}/recommendations", response_model=ApiResponse)
async def list_recommendations(
    event_id: str,
    db: Session = Depends(get_db),
    lifecycle: EventLifecycleService = Depends(get_lifecycle)
):
    """List recommendations ordered by rank."""
    recommendations = lifecycle.list_recommendations(db, event_id)
    return ok(RecommendationList(
        recommendations=[RecommendationOut.model_validate(r) for r in recommendations]
    ))


@router.post("/events/{event_id}/retry", response_model=ApiResponse)
async def retry_recommendations(
    event_id: str,
    request: CreatorRequest,
    db: Session = Depends(get_db),
    lifecycle: EventLifecycleService = Depends(get_lifecycle)
):
    """Regenerate recommendations for an event stuck in READY (creator only)."""
    event = await lifecycle.retry_recommendations(db, event_id, request.creator_nickname)
    return ok(RetryResult(message="Recommendations generated", status=event.status))


@router.post("/events/{event_id}/finalize", response_model=ApiResponse)
async def finalize_event(
    event_id: str,
    request: FinalizeRequest,
    db: Session = Depends(get_db),
    lifecycle: EventLifecycleService = Depends(get_lifecycle)
):
    """Close voting on the organizer's chosen location."""
    event = lifecycle.finalize(db, event_id, request.final_location_id, request.creator_nickname)
    return ok(FinalizeResult(
        final_location=RecommendationOut.model_validate(event.final_location),
        voting_ended_at=event.voting_ended_at,
        status=event.status
    ))
