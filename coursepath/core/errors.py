"""Progression engine error taxonomy.

Every engine operation fails with one of four families:

- ``ValidationError``: out-of-range or malformed input, rejected before any write
- ``StateError``: the learner may not act right now (inactive enrollment,
  locked session)
- ``ConflictError``: a uniqueness boundary was hit (attempt limit, concurrent
  duplicate, progress write that kept losing its compare-and-set)
- ``NotFoundError``: unknown course/session/quiz/enrollment/attempt id

Routers convert them to HTTP responses with ``handle_engine_error``.
"""

from fastapi import HTTPException, status


class EngineError(Exception):
    """Base progression engine error."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, code: str = "engine_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(EngineError):
    """Input outside its allowed range."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, message: str, code: str = "validation_error"):
        super().__init__(message, code)


class StateError(EngineError):
    """Action not allowed in the current learner state."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, code: str = "invalid_state"):
        super().__init__(message, code)


class ConflictError(EngineError):
    """Uniqueness or limit boundary hit."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, code: str = "conflict"):
        super().__init__(message, code)


class NotFoundError(EngineError):
    """Referenced entity does not exist."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str, code: str = "not_found"):
        super().__init__(message, code)


class EnrollmentNotActiveError(StateError):
    """Enrollment has not been approved (or was rejected)."""

    def __init__(self, message: str = "Enrollment is not active"):
        super().__init__(message, "enrollment_not_active")


class SessionLockedError(StateError):
    """Session is not unlocked for this enrollment."""

    def __init__(self, message: str = "Session is locked"):
        super().__init__(message, "session_locked")


class AttemptLimitExceededError(ConflictError):
    """No quiz attempts remaining."""

    def __init__(self, message: str = "No quiz attempts remaining"):
        super().__init__(message, "attempt_limit_exceeded")


class AttemptConflictError(ConflictError):
    """Concurrent submissions kept colliding on the attempt number."""

    def __init__(self, message: str = "Concurrent quiz submission detected"):
        super().__init__(message, "attempt_conflict")


class ProgressWriteConflictError(ConflictError):
    """Session progress kept changing underneath a merge."""

    def __init__(self, message: str = "Session progress changed concurrently"):
        super().__init__(message, "progress_write_conflict")


class DuplicateCertificateError(ConflictError):
    """Another trigger minted the certificate first.

    Callers treat this as success: the certificate exists.
    """

    def __init__(self, message: str = "Certificate already issued"):
        super().__init__(message, "duplicate_certificate")


def handle_engine_error(error: EngineError) -> HTTPException:
    """Convert an engine error to an HTTP exception."""
    return HTTPException(
        status_code=error.status_code,
        detail=error.message,
        headers={"X-Error-Code": error.code},
    )
