"""
Ledger failure taxonomy and the response envelope it is reported in.

Engine services raise one of four `KnownError` subclasses:

    InvalidRequestError      400  bad identifiers, batches or quantities
    NotFoundError            404  collection or card does not exist
    CatalogUnavailableError  503  catalog unreadable or malformed
    PersistenceError         503  ledger store rejected a read or write

The API renders them as an `ApiResponse` carrying the error's status code.
Anything else is reported as an unknown failure that names only the
exception type. Every rendered failure goes through `finalize_response()`.
"""

from enum import Enum
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class FailureKind(str, Enum):
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    SERVICE_UNAVAILABLE = "service_unavailable"
    PERSISTENCE_ERROR = "persistence_error"
    UNKNOWN = "unknown"


class OutcomeType(str, Enum):
    SUCCESS = "success"
    KNOWN_FAILURE = "known_failure"
    UNKNOWN_FAILURE = "unknown_failure"


class FailureDetail(BaseModel):
    """What went wrong, in words a caller can act on."""

    kind: FailureKind
    message: str
    detail: str | None = None
    suggestion: str | None = None


class ApiResponse(BaseModel, Generic[T]):
    """Envelope with either `data` (success) or `failure` (anything else)."""

    outcome: OutcomeType
    data: T | None = None
    failure: FailureDetail | None = None

    @classmethod
    def success(cls, data: T) -> "ApiResponse[T]":
        return cls(outcome=OutcomeType.SUCCESS, data=data)

    @classmethod
    def known_failure(
        cls,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
    ) -> "ApiResponse[Any]":
        failure = FailureDetail(kind=kind, message=message, detail=detail, suggestion=suggestion)
        return cls(outcome=OutcomeType.KNOWN_FAILURE, failure=failure)


class KnownError(Exception):
    """
    A failure the engine can name.

    Subclasses fix `kind`, `status_code` and `suggestion`; the message and
    detail vary per raise. The store is left untouched by the failed call.
    """

    kind: ClassVar[FailureKind] = FailureKind.INVALID_INPUT
    status_code: ClassVar[int] = 400
    suggestion: ClassVar[str | None] = None

    def __init__(self, message: str, detail: str | None = None):
        self.message = message
        self.detail = detail
        super().__init__(message)

    def to_response(self) -> ApiResponse[Any]:
        return ApiResponse.known_failure(
            kind=self.kind,
            message=self.message,
            detail=self.detail,
            suggestion=self.suggestion,
        )


class InvalidRequestError(KnownError):
    """Missing identifiers, malformed batch payloads, out-of-range values."""

    suggestion = "Check the request fields and try again."


class NotFoundError(KnownError):
    """A referenced collection or card does not exist (for this user)."""

    kind = FailureKind.NOT_FOUND
    status_code = 404

    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(
            f"{resource.capitalize()} not found.",
            detail=f"{resource} '{identifier}' does not exist",
        )


class CatalogUnavailableError(KnownError):
    """Catalog unreadable or malformed; the whole call fails."""

    kind = FailureKind.SERVICE_UNAVAILABLE
    status_code = 503
    suggestion = "Try again once the catalog has been synced."

    def __init__(self, detail: str | None = None):
        super().__init__("Card catalog is not available.", detail=detail)


class PersistenceError(KnownError):
    """Store rejected a read or write. Not retried here; retrying the call is safe."""

    kind = FailureKind.PERSISTENCE_ERROR
    status_code = 503
    suggestion = "Retry the operation."

    def __init__(self, detail: str | None = None):
        super().__init__("The ledger could not be updated.", detail=detail)


# =============================================================================
# FINALIZATION
# =============================================================================

UNKNOWN_MESSAGE = "The operation failed for an unexpected reason. Try again."
UNKNOWN_SUGGESTION = "If this persists, please report the issue."

# id() of every response that passed finalize_response()
_finalized_responses: set[int] = set()


def finalize_response(response: ApiResponse[Any]) -> ApiResponse[Any]:
    """
    Check the envelope is consistent and mark it as finalized.

    Raises:
        ValueError: Success carrying a failure, or a failure without details
    """
    if response.outcome == OutcomeType.SUCCESS and response.failure is not None:
        raise ValueError("Success response must not have failure details")
    if response.outcome != OutcomeType.SUCCESS and response.failure is None:
        raise ValueError(f"{response.outcome.value} response must have failure details")

    _finalized_responses.add(id(response))
    return response


def is_finalized(response: ApiResponse[Any]) -> bool:
    return id(response) in _finalized_responses


def create_unknown_failure(exception: Exception) -> ApiResponse[Any]:
    """Finalized unknown failure naming only the exception type, never its message."""
    response: ApiResponse[Any] = ApiResponse(
        outcome=OutcomeType.UNKNOWN_FAILURE,
        failure=FailureDetail(
            kind=FailureKind.UNKNOWN,
            message=UNKNOWN_MESSAGE,
            detail=type(exception).__name__,
            suggestion=UNKNOWN_SUGGESTION,
        ),
    )
    return finalize_response(response)
