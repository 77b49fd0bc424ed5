"""Quiz attempt API endpoints.

Provides routes for:
- Starting an attempt
- Submitting an attempt for grading
- Attempt history and review
"""

from uuid import UUID

from fastapi import APIRouter, status

from coursepath.auth.dependencies import CurrentLearner
from coursepath.core.errors import EngineError, handle_engine_error

from .dependencies import QuizServiceDep
from .grading import SubmittedAnswer
from .schemas import (
    AttemptReviewResponse,
    QuizAttemptListResponse,
    QuizAttemptResponse,
    QuizPresentationResponse,
    SubmitAttemptRequest,
)


router = APIRouter(prefix="/v1/quizzes", tags=["quizzes"])


@router.post(
    "/{quiz_id}/attempts/start",
    response_model=QuizPresentationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start quiz attempt",
)
async def start_quiz_attempt(
    quiz_id: UUID,
    quiz_service: QuizServiceDep,
    learner: CurrentLearner,
) -> QuizPresentationResponse:
    """Reserve an attempt and get the questions in display order."""
    try:
        return await quiz_service.start_attempt(learner.id, quiz_id)
    except EngineError as e:
        raise handle_engine_error(e) from e


@router.post(
    "/{quiz_id}/attempts",
    response_model=QuizAttemptResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit quiz attempt",
)
async def submit_quiz_attempt(
    quiz_id: UUID,
    data: SubmitAttemptRequest,
    quiz_service: QuizServiceDep,
    learner: CurrentLearner,
) -> QuizAttemptResponse:
    """Grade the submitted answers.

    Passing a session quiz can complete the session; passing the final
    assessment can complete the course and issue the certificate.
    """
    answers = [
        SubmittedAnswer(
            question_id=a.question_id,
            selected_option_ids=frozenset(a.selected_option_ids),
        )
        for a in data.answers
    ]
    try:
        attempt = await quiz_service.submit_attempt(
            user_id=learner.id,
            quiz_id=quiz_id,
            answers=answers,
            client_elapsed_seconds=data.time_spent_seconds,
            attempt_id=data.attempt_id,
        )
    except EngineError as e:
        raise handle_engine_error(e) from e
    return QuizAttemptResponse.from_entity(attempt)


@router.get(
    "/{quiz_id}/attempts",
    response_model=QuizAttemptListResponse,
    summary="List my attempts",
)
async def list_quiz_attempts(
    quiz_id: UUID,
    quiz_service: QuizServiceDep,
    learner: CurrentLearner,
) -> QuizAttemptListResponse:
    """Attempt history with remaining attempts."""
    try:
        return await quiz_service.list_attempts(learner.id, quiz_id)
    except EngineError as e:
        raise handle_engine_error(e) from e


@router.get(
    "/attempts/{attempt_id}",
    response_model=AttemptReviewResponse,
    summary="Review attempt",
)
async def get_attempt_review(
    attempt_id: UUID,
    quiz_service: QuizServiceDep,
    learner: CurrentLearner,
) -> AttemptReviewResponse:
    """Replay a graded attempt in the order it was presented."""
    try:
        return await quiz_service.get_attempt_review(learner.id, attempt_id)
    except EngineError as e:
        raise handle_engine_error(e) from e
