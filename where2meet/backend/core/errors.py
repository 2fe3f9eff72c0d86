"""Domain error taxonomy shared by services and the API layer."""
import enum
from typing import Any, Optional


class ErrorKind(str, enum.Enum):
    """Kind of failure, independent of the message shown to users."""
    NOT_FOUND = "NOT_FOUND"
    INVALID_INPUT = "INVALID_INPUT"
    CONFLICT = "CONFLICT"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    ALREADY_VOTED = "ALREADY_VOTED"
    GENERATION_FAILED = "GENERATION_FAILED"


HTTP_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.NOT_AUTHORIZED: 403,
    ErrorKind.ALREADY_VOTED: 409,
    ErrorKind.GENERATION_FAILED: 503,
}


class Where2MeetError(Exception):
    """
    Base class for every failure a core operation can report.

    Attributes:
        kind: Error kind used by callers to pick a recovery path
        code: Stable wire code (EVENT_NOT_FOUND, EVENT_FULL, ...)
        message: Human readable description
        details: Optional structured payload (e.g. generator suggestions)
    """

    kind: ErrorKind = ErrorKind.INVALID_INPUT
    default_code: str = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Any] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]

    def to_dict(self) -> dict:
        """Discriminated error envelope returned to callers."""
        return {
            "success": False,
            "error": self.code,
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class NotFoundError(Where2MeetError):
    kind = ErrorKind.NOT_FOUND
    default_code = "EVENT_NOT_FOUND"


class InvalidInputError(Where2MeetError):
    kind = ErrorKind.INVALID_INPUT
    default_code = "VALIDATION_ERROR"


class ConflictError(Where2MeetError):
    kind = ErrorKind.CONFLICT
    default_code = "CONFLICT"


class NotAuthorizedError(Where2MeetError):
    kind = ErrorKind.NOT_AUTHORIZED
    default_code = "NOT_AUTHORIZED"


class AlreadyVotedError(Where2MeetError):
    kind = ErrorKind.ALREADY_VOTED
    default_code = "ALREADY_VOTED"


class GenerationFailedError(Where2MeetError):
    kind = ErrorKind.GENERATION_FAILED
    default_code = "LLM_ERROR"
