"""Tests for the vote ledger."""
import threading
from concurrent.futures import ThreadPoolExecutor
import pytest
from sqlalchemy.exc import IntegrityError
from where2meet.backend.core.errors import (
    AlreadyVotedError,
    ConflictError,
    NotAuthorizedError,
    NotFoundError,
)
from where2meet.backend.db.models import Vote
from where2meet.backend.schemas.vote import RecommendationTally
from where2meet.backend.services.voting import VotingLedgerService, vote_counts


@pytest.fixture
def voting():
    return VotingLedgerService()


def test_cast_vote(voting_event, voting, db_session):
    rec_id = voting_event.recommendations[0].id

    tally = voting.cast_vote(db_session, voting_event.id, rec_id, "Bob")

    assert tally.vote_count == 1
    assert tally.voters == ["Bob"]
    assert tally.has_current_user_voted is True


def test_switch_vote(voting_event, voting, db_session):
    """Scenario: voting #1 then #2 moves the single vote."""
    first, second, _ = [r.id for r in voting_event.recommendations]
    voting.cast_vote(db_session, voting_event.id, first, "Bob")

    tally = voting.cast_vote(db_session, voting_event.id, second, "Bob")

    assert tally.vote_count == 1
    assert voting.recommendation_tally(db_session, first).vote_count == 0
    assert vote_counts(db_session, voting_event.id) == {second: 1}
    assert db_session.query(Vote).filter_by(event_id=voting_event.id, voter_nickname="Bob").count() == 1


def test_vote_twice_for_same_recommendation(voting_event, voting, db_session):
    rec_id = voting_event.recommendations[0].id
    voting.cast_vote(db_session, voting_event.id, rec_id, "Bob")

    with pytest.raises(AlreadyVotedError):
        voting.cast_vote(db_session, voting_event.id, rec_id, "Bob")

    assert voting.recommendation_tally(db_session, rec_id).vote_count == 1


def test_vote_then_unvote_restores_tally(voting_event, voting, db_session):
    rec_id = voting_event.recommendations[2].id
    before = voting.tally(db_session, voting_event.id, "Bob")

    voting.cast_vote(db_session, voting_event.id, rec_id, "Bob")
    tally = voting.remove_vote(db_session, voting_event.id, rec_id, "Bob")

    assert tally.vote_count == 0
    assert tally.has_current_user_voted is False
    assert voting.tally(db_session, voting_event.id, "Bob") == before


def test_unvote_without_vote(voting_event, voting, db_session):
    with pytest.raises(NotFoundError) as exc_info:
        voting.remove_vote(db_session, voting_event.id, voting_event.recommendations[0].id, "Bob")

    assert exc_info.value.code == "VOTE_NOT_FOUND"


def test_unvote_other_recommendation(voting_event, voting, db_session):
    first, second, _ = [r.id for r in voting_event.recommendations]
    voting.cast_vote(db_session, voting_event.id, first, "Bob")

    with pytest.raises(NotFoundError):
        voting.remove_vote(db_session, voting_event.id, second, "Bob")


def test_vote_requires_participant(voting_event, voting, db_session):
    with pytest.raises(NotAuthorizedError) as exc_info:
        voting.cast_vote(db_session, voting_event.id, voting_event.recommendations[0].id, "Mallory")

    assert exc_info.value.code == "NOT_PARTICIPANT"


def test_vote_before_voting_opens(ready_event, voting, db_session):
    with pytest.raises(ConflictError) as exc_info:
        voting.cast_vote(db_session, ready_event.id, 1, "Bob")

    assert exc_info.value.code == "VOTING_NOT_STARTED"


def test_vote_after_finalize(voting_event, voting, lifecycle, db_session):
    rec_id = voting_event.recommendations[0].id
    lifecycle.finalize(db_session, voting_event.id, rec_id, "Alice")

    with pytest.raises(ConflictError) as exc_info:
        voting.cast_vote(db_session, voting_event.id, rec_id, "Bob")

    assert exc_info.value.code == "VOTING_ENDED"


def test_vote_for_unknown_recommendation(voting_event, voting, db_session):
    with pytest.raises(NotFoundError) as exc_info:
        voting.cast_vote(db_session, voting_event.id, 99999, "Bob")

    assert exc_info.value.code == "RECOMMENDATION_NOT_FOUND"


def test_one_live_vote_per_voter_is_a_constraint(voting_event, db_session):
    first, second, _ = [r.id for r in voting_event.recommendations]
    db_session.add(Vote(event_id=voting_event.id, recommendation_id=first, voter_nickname="Bob"))
    db_session.add(Vote(event_id=voting_event.id, recommendation_id=second, voter_nickname="Bob"))

    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()


def test_concurrent_votes_by_one_voter(voting_event, session_factory):
    """Two simultaneous votes by Bob leave exactly one live vote."""
    first, second, _ = [r.id for r in voting_event.recommendations]
    barrier = threading.Barrier(2)

    def vote(recommendation_id):
        db = session_factory()
        try:
            barrier.wait()
            return VotingLedgerService().cast_vote(db, voting_event.id, recommendation_id, "Bob")
        except ConflictError as e:
            return e
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=2) as pool:
        outcomes = list(pool.map(vote, [first, second]))

    tallies = [o for o in outcomes if isinstance(o, RecommendationTally)]
    conflicts = [o for o in outcomes if isinstance(o, ConflictError)]
    assert len(tallies) + len(conflicts) == 2
    assert tallies
    assert all(e.code == "CONFLICT" for e in conflicts)

    check = session_factory()
    try:
        votes = check.query(Vote).filter_by(event_id=voting_event.id, voter_nickname="Bob").all()
        assert len(votes) == 1
        assert votes[0].recommendation_id in (first, second)
    finally:
        check.close()


def test_event_tally(voting_event, voting, db_session):
    first, second, third = voting_event.recommendations
    third.location_name = None
    db_session.commit()
    voting.cast_vote(db_session, voting_event.id, first.id, "Alice")
    voting.cast_vote(db_session, voting_event.id, first.id, "Bob")

    tally = voting.tally(db_session, voting_event.id, "Bob")

    assert tally.total_votes == 2
    assert tally.participant_count == 2
    by_id = {summary.recommendation_id: summary for summary in tally.recommendations}
    assert by_id[first.id].voters == ["Alice", "Bob"]
    assert by_id[first.id].has_current_user_voted is True
    assert by_id[second.id].vote_count == 0
    assert by_id[third.id].location_name == "Unknown Location"
