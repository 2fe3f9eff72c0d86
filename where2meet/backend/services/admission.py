"""Event creation and participant admission."""
import logging
import random
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Callable, Collection, List, Optional
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from where2meet.backend.core.errors import ConflictError
from where2meet.backend.db.models import Event, EventStatus, Participant, utcnow
from where2meet.backend.schemas.event import EventCreate
from where2meet.backend.schemas.participant import JoinResult, ParticipantOut
from where2meet.backend.services.audit import AuditService
from where2meet.backend.services.expiration import ExpirationPolicy
from where2meet.backend.services.lifecycle import EventLifecycleService

logger = logging.getLogger(__name__)

EVENT_ID_ALPHABET = string.digits + string.ascii_letters
SHORT_CODE_ALPHABET = string.digits + string.ascii_uppercase
EVENT_ID_LENGTH = 8
SHORT_CODE_LENGTH = 6

# Two-digit suffixes 10..99
NICKNAME_SUFFIX_ATTEMPTS = 90
MAX_CREATE_ATTEMPTS = 3
MAX_JOIN_ATTEMPTS = 3


def generate_event_id() -> str:
    return "".join(secrets.choice(EVENT_ID_ALPHABET) for _ in range(EVENT_ID_LENGTH))


def generate_short_code() -> str:
    return "".join(secrets.choice(SHORT_CODE_ALPHABET) for _ in range(SHORT_CODE_LENGTH))


def generate_unique_nickname(
    base: str,
    existing: Collection[str],
    rng: random.Random = None,
    clock: Callable[[], float] = time.time
) -> str:
    """
    Return ``base`` if unused, else ``base_NN`` with a random NN in 10..99.

    After NICKNAME_SUFFIX_ATTEMPTS collisions the last two digits of the
    current millisecond timestamp are used instead, so the loop always ends.
    """
    if base not in existing:
        return base

    rng = rng or random
    for _ in range(NICKNAME_SUFFIX_ATTEMPTS):
        candidate = f"{base}_{rng.randint(10, 99)}"
        if candidate not in existing:
            return candidate

    return f"{base}_{str(int(clock() * 1000))[-2:]}"


def _as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class ParticipantAdmissionService:
    """Creates events and admits participants up to the expected headcount."""

    def __init__(
        self,
        lifecycle: Optional[EventLifecycleService] = None,
        expiration: Optional[ExpirationPolicy] = None,
        audit: Optional[AuditService] = None,
        rng: Optional[random.Random] = None
    ):
        self.expiration = expiration or ExpirationPolicy()
        self.audit = audit or AuditService()
        self.lifecycle = lifecycle or EventLifecycleService(expiration=self.expiration, audit=self.audit)
        self.rng = rng

    def create_event(self, db: Session, payload: EventCreate, now: Optional[datetime] = None) -> Event:
        """
        Create an event in WAITING together with its creator participant.

        Args:
            db: Database session
            payload: Validated creation request
            now: Creation time (defaults to current UTC time)

        Returns:
            The persisted Event
        """
        now = now or utcnow()

        for attempt in range(1, MAX_CREATE_ATTEMPTS + 1):
            event = Event(
                id=generate_event_id(),
                short_code=generate_short_code(),
                title=payload.title,
                purpose=payload.purpose,
                event_time=_as_naive_utc(payload.event_time),
                special_requirements=payload.special_requirements,
                expected_participants=payload.expected_participants,
                status=EventStatus.WAITING,
                created_at=now,
                updated_at=now,
                expires_at=self.expiration.expires_at_for(now),
            )
            event.participants.append(Participant(
                nickname=payload.creator_nickname,
                address=payload.creator_address,
                is_creator=True,
                joined_at=now,
            ))
            db.add(event)
            self.audit.log_action(
                action="event_created",
                event_id=event.id,
                actor=payload.creator_nickname,
                details={"title": payload.title, "expected_participants": payload.expected_participants},
                db=db,
                commit=False
            )
            try:
                db.commit()
                break
            except IntegrityError:
                db.rollback()
                logger.warning("Event identifier collision (attempt %s), retrying", attempt)
        else:
            raise ConflictError("Could not allocate a unique event identifier", code="CONFLICT")

        db.refresh(event)
        logger.info("Created event %s (%s) expecting %s participants", event.id, event.short_code, event.expected_participants)
        return event

    def join_event(
        self,
        db: Session,
        event_id: str,
        nickname: str,
        address: str,
        now: Optional[datetime] = None
    ) -> JoinResult:
        """
        Admit a participant, renaming on nickname collision.

        When this join completes the group, the event moves to READY in the
        same transaction and ``should_generate_recommendations`` is set; the
        caller is responsible for scheduling generation.

        Raises:
            NotFoundError: Event missing or expired
            ConflictError: EVENT_FULL when the event no longer accepts participants
        """
        for attempt in range(1, MAX_JOIN_ATTEMPTS + 1):
            try:
                return self._join_once(db, event_id, nickname, address, now or utcnow())
            except IntegrityError:
                # Another join took the same nickname between our read and insert
                db.rollback()
                logger.warning("Nickname collision joining event %s (attempt %s), retrying", event_id, attempt)
        raise ConflictError("Could not assign a unique nickname", code="CONFLICT")

    def _join_once(
        self,
        db: Session,
        event_id: str,
        nickname: str,
        address: str,
        now: datetime
    ) -> JoinResult:
        event = self.expiration.get_live_event(db, event_id, now=now, for_update=True)
        if event.status != EventStatus.WAITING or len(event.participants) >= event.expected_participants:
            db.rollback()
            raise ConflictError("This event is not accepting new participants", code="EVENT_FULL")

        assigned = generate_unique_nickname(nickname, {p.nickname for p in event.participants}, self.rng)
        participant = Participant(
            event_id=event.id,
            nickname=assigned,
            address=address,
            is_creator=False,
            joined_at=now,
        )
        db.add(participant)
        db.flush()

        participant_count = (
            db.query(func.count(Participant.id))
            .filter(Participant.event_id == event.id)
            .scalar()
        )
        if participant_count > event.expected_participants:
            db.rollback()
            raise ConflictError("This event is not accepting new participants", code="EVENT_FULL")

        became_ready = (
            participant_count == event.expected_participants
            and self.lifecycle.mark_ready_if_full(db, event, now)
        )

        self.audit.log_action(
            action="participant_joined",
            event_id=event.id,
            actor=assigned,
            details={"participant_count": participant_count, "nickname_modified": assigned != nickname},
            db=db,
            commit=False
        )
        db.commit()
        db.refresh(participant)

        logger.info("Participant joined event %s (%s/%s)", event_id, participant_count, event.expected_participants)
        modified = assigned != nickname
        return JoinResult(
            participant=ParticipantOut.model_validate(participant),
            participant_count=participant_count,
            should_generate_recommendations=bool(became_ready) and participant_count >= 2,
            nickname_modified=modified,
            original_nickname=nickname if modified else None,
            assigned_nickname=assigned,
        )

    def list_participants(self, db: Session, event_id: str) -> List[Participant]:
        """Participants of a live event in join order."""
        return self.expiration.get_live_event(db, event_id).participants
