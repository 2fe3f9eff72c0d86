"""Nickname-based authorization.

There are no accounts: the creator proves who they are by presenting the
creator's nickname, and a voter by presenting a participant nickname.
"""
from where2meet.backend.core.errors import NotAuthorizedError
from where2meet.backend.db.models import Event, Participant


def require_creator(event: Event, nickname: str) -> Participant:
    """Return the creator participant if the nickname matches, else raise NOT_AUTHORIZED."""
    creator = event.creator
    if not creator or creator.nickname != nickname:
        raise NotAuthorizedError(
            "Only the event creator can perform this action",
            code="NOT_AUTHORIZED"
        )
    return creator


def require_participant(event: Event, nickname: str) -> Participant:
    """Return the participant with this nickname, else raise NOT_AUTHORIZED."""
    participant = next((p for p in event.participants if p.nickname == nickname), None)
    if not participant:
        raise NotAuthorizedError(
            "Only participants in this event can perform this action",
            code="NOT_PARTICIPANT"
        )
    return participant
