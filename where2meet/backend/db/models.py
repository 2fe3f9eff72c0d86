"""SQLAlchemy 2.0 database models."""
from sqlalchemy import (
    Column, String, Integer, DateTime, ForeignKey, JSON, Enum as SQLEnum, Boolean, Float, Text,
    UniqueConstraint
)
from sqlalchemy.orm import relationship, declarative_base
from datetime import datetime, timezone
import enum
import uuid


Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation every DateTime column uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class EventStatus(str, enum.Enum):
    """Event lifecycle status."""
    WAITING = "WAITING"
    READY = "READY"
    VOTING = "VOTING"
    FINALIZED = "FINALIZED"
    EXPIRED = "EXPIRED"


class EventPurpose(str, enum.Enum):
    """Why the group is meeting."""
    DINING = "dining"
    COFFEE = "coffee"
    MEETING = "meeting"
    OTHER = "other"


class Event(Base):
    """Event model."""
    __tablename__ = "events"

    id = Column(String(8), primary_key=True)
    short_code = Column(String(6), unique=True, nullable=False, index=True)
    title = Column(String(50), nullable=False)
    purpose = Column(SQLEnum(EventPurpose), nullable=False, default=EventPurpose.OTHER)
    event_time = Column(DateTime, nullable=True)
    special_requirements = Column(String(200), nullable=True)
    expected_participants = Column(Integer, nullable=False)
    status = Column(SQLEnum(EventStatus), nullable=False, default=EventStatus.WAITING, index=True)
    # Not a database FK: events and recommendations would reference each other
    final_location_id = Column(Integer, nullable=True)
    voting_started_at = Column(DateTime, nullable=True)
    voting_ended_at = Column(DateTime, nullable=True)
    last_generation_error = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)

    # Relationships
    participants = relationship(
        "Participant",
        back_populates="event",
        cascade="all, delete",
        order_by="Participant.joined_at, Participant.id"
    )
    recommendations = relationship(
        "Recommendation",
        back_populates="event",
        cascade="all, delete",
        order_by="Recommendation.rank"
    )
    votes = relationship("Vote", back_populates="event", cascade="all, delete")
    final_location = relationship(
        "Recommendation",
        primaryjoin="foreign(Event.final_location_id) == Recommendation.id",
        viewonly=True,
        uselist=False
    )

    @property
    def creator(self):
        """The participant flagged as creator, if loaded."""
        return next((p for p in self.participants if p.is_creator), None)


class Participant(Base):
    """Participant model."""
    __tablename__ = "participants"
    __table_args__ = (
        UniqueConstraint("event_id", "nickname", name="uq_participants_event_nickname"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(8), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    nickname = Column(String(32), nullable=False)
    address = Column(String(200), nullable=False)
    is_creator = Column(Boolean, default=False, nullable=False)
    joined_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    event = relationship("Event", back_populates="participants")


class Recommendation(Base):
    """Candidate meeting location produced by the generator."""
    __tablename__ = "recommendations"
    __table_args__ = (
        UniqueConstraint("event_id", "rank", name="uq_recommendations_event_rank"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(8), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    location_name = Column(String, nullable=True)
    location_type = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    fairness_analysis = Column(Text, nullable=True)
    suitability_score = Column(Float, nullable=True)  # 0-10
    rank = Column(Integer, nullable=False)  # 1-3
    coordinates = Column(JSON, nullable=True)  # {lat, lng}
    facilities = Column(JSON, default=list)
    distances = Column(JSON, default=list)  # per-participant distance records
    generated_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    event = relationship("Event", back_populates="recommendations")
    votes = relationship(
        "Vote",
        back_populates="recommendation",
        cascade="all, delete",
        order_by="Vote.voted_at, Vote.id"
    )


class Vote(Base):
    """A participant's single live vote within an event."""
    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("event_id", "voter_nickname", name="uq_votes_event_voter"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    recommendation_id = Column(
        Integer, ForeignKey("recommendations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_id = Column(String(8), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    voter_nickname = Column(String(32), nullable=False)
    voted_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    recommendation = relationship("Recommendation", back_populates="votes")
    event = relationship("Event", back_populates="votes")


class AuditLog(Base):
    """Audit log model for tracking actions."""
    __tablename__ = "audit_logs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(8), nullable=True, index=True)
    actor = Column(String, nullable=False)
    action = Column(String, nullable=False)  # event_created, generation_failed, ...
    timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)
    after_hash = Column(String, nullable=True)
    details = Column(JSON, nullable=True)
