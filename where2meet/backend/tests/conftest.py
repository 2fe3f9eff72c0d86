"""Pytest configuration and fixtures."""
import asyncio
import os

# Keep the application engine off the developer's database during tests
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["LLM_PROVIDER"] = "mock"

import pytest
from sqlalchemy.orm import sessionmaker
from where2meet.backend.db.models import Base
from where2meet.backend.db.session import build_engine, get_db, get_session_factory
from where2meet.backend.main import app
from where2meet.backend.schemas.ai import GenerationResponse, GeneratedRecommendation
from where2meet.backend.schemas.event import EventCreate
from where2meet.backend.services.admission import ParticipantAdmissionService
from where2meet.backend.services.lifecycle import EventLifecycleService
from where2meet.backend.services.recommender import RecommendationGenerator, get_recommendation_generator
from fastapi.testclient import TestClient
import tempfile


def build_response(count: int = 3, ranks=None) -> GenerationResponse:
    """Deterministic generator output with ``count`` candidates."""
    ranks = ranks or list(range(1, count + 1))
    return GenerationResponse(
        analysis="Everyone lives near the river.",
        recommendations=[
            GeneratedRecommendation(
                rank=rank,
                name=f"Place {index + 1}",
                type="Cafe",
                description="Quiet with big tables.",
                fairness_analysis="Similar travel times for everyone.",
                coordinates={"lat": 52.5, "lng": 13.4},
                distances=[{"participant": "Alice", "estimate": "2 km", "transport": "Bus", "time": "10 min"}],
                facilities=["Wi-Fi"],
                suitability_score=8.0 - index * 0.5,
            )
            for index, rank in enumerate(ranks)
        ],
    )


class FakeGenerator(RecommendationGenerator):
    """Recording generator; set ``error``, ``delay`` or ``response`` to steer it."""

    def __init__(self):
        self.calls = []
        self.error = None
        self.delay = 0
        self.response = None

    async def generate(self, request):
        self.calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.response or build_response()


@pytest.fixture(scope="function")
def engine():
    """Temporary SQLite database."""
    db_fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(db_fd)

    engine = build_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(bind=engine)

    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
        os.unlink(db_path)


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """Create a test database session."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_generator():
    return FakeGenerator()


@pytest.fixture
def generation_response():
    """The ``build_response`` factory."""
    return build_response


@pytest.fixture
def lifecycle(fake_generator):
    return EventLifecycleService(generator=fake_generator, timeout_seconds=5)


@pytest.fixture
def admission(lifecycle):
    return ParticipantAdmissionService(lifecycle=lifecycle)


@pytest.fixture
def make_event(admission, db_session):
    """Factory creating an event in WAITING with Alice as creator."""
    def _make(expected_participants=2, creator="Alice", address="Addr A", now=None, **overrides):
        payload = EventCreate(
            title=overrides.pop("title", "Friday dinner"),
            creator_nickname=creator,
            creator_address=address,
            purpose=overrides.pop("purpose", "dining"),
            expected_participants=expected_participants,
            **overrides
        )
        return admission.create_event(db_session, payload, now=now)
    return _make


@pytest.fixture
def ready_event(make_event, admission, db_session):
    """Two-person event that has just become READY."""
    event = make_event(expected_participants=2)
    admission.join_event(db_session, event.id, "Bob", "Addr B")
    db_session.expire_all()
    return event


@pytest.fixture
def voting_event(ready_event, lifecycle, db_session):
    """Two-person event in VOTING with three recommendations."""
    lifecycle.apply_recommendations(
        db_session, ready_event.id, lifecycle.normalize_recommendations(build_response())
    )
    db_session.refresh(ready_event)
    return ready_event


@pytest.fixture(scope="function")
def client(db_session, session_factory, fake_generator):
    """Create a test client."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_recommendation_generator] = lambda: fake_generator
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def sample_event_data():
    """Sample event creation body."""
    return {
        "title": "Friday dinner",
        "creator_nickname": "Alice",
        "creator_address": "Addr A",
        "purpose": "dining",
        "expected_participants": 2,
    }
