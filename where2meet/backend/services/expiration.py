"""Event time-to-live policy.

Expiry is computed on read: an event whose ``expires_at`` has passed is treated
as missing by every operation, whatever its stored status says.
"""
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.orm import Query, Session
from where2meet.backend.core.config import settings
from where2meet.backend.core.errors import NotFoundError
from where2meet.backend.db.models import Event, EventStatus, utcnow


class ExpirationPolicy:
    """Decides whether an event is still visible and actionable."""

    def __init__(self, ttl_days: Optional[int] = None):
        self.ttl = timedelta(days=ttl_days if ttl_days is not None else settings.event_ttl_days)

    def expires_at_for(self, created_at: datetime) -> datetime:
        """Expiry timestamp fixed at creation time; never extended."""
        return created_at + self.ttl

    @staticmethod
    def is_live(event: Event, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return event.expires_at is not None and now < event.expires_at

    def effective_status(self, event: Event, now: Optional[datetime] = None) -> EventStatus:
        """Status as shown to callers: EXPIRED once the TTL elapsed."""
        if not self.is_live(event, now):
            return EventStatus.EXPIRED
        return EventStatus(event.status)

    @staticmethod
    def live_events(db: Session, now: Optional[datetime] = None) -> Query:
        """Base query applying the TTL filter."""
        now = now or utcnow()
        return db.query(Event).filter(Event.expires_at > now)

    def get_live_event(
        self,
        db: Session,
        event_id: str,
        now: Optional[datetime] = None,
        for_update: bool = False
    ) -> Event:
        """
        Load a live event or raise NOT_FOUND.

        Args:
            db: Database session
            event_id: Event ID
            now: Evaluation time (defaults to current UTC time)
            for_update: Take a row lock where the backend supports it

        Returns:
            Event model

        Raises:
            NotFoundError: If the event is missing or expired
        """
        query = self.live_events(db, now).filter(Event.id == event_id)
        if for_update:
            query = query.with_for_update()
        event = query.first()
        if not event:
            raise NotFoundError(f"Event {event_id} not found", code="EVENT_NOT_FOUND")
        return event

    def get_live_event_by_code(
        self,
        db: Session,
        short_code: str,
        now: Optional[datetime] = None
    ) -> Event:
        """Case-insensitive short code lookup restricted to live events."""
        event = self.live_events(db, now).filter(Event.short_code == short_code.strip().upper()).first()
        if not event:
            raise NotFoundError(f"Event code {short_code} not found", code="EVENT_NOT_FOUND")
        return event
