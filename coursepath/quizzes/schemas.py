"""Pydantic schemas for quiz attempts.

Request and response models for:
- Starting an attempt (questions in display order, correctness hidden)
- Submitting and grading an attempt
- Attempt history and review
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import QuizAttempt


# ==============================================================================
# Presentation Schemas
# ==============================================================================


class OptionPresentation(BaseModel):
    """Answer option as shown to the learner."""

    id: UUID
    text: str


class QuestionPresentation(BaseModel):
    """Question as shown to the learner."""

    id: UUID
    prompt: str
    points: int
    multiple_answers: bool = Field(description="More than one option is correct")
    options: list[OptionPresentation]


class QuizPresentationResponse(BaseModel):
    """Started attempt with questions in display order."""

    attempt_id: UUID
    quiz_id: UUID
    title: str
    attempt_number: int
    max_attempts: int
    started_at: datetime
    time_limit_seconds: int = Field(description="0 means unlimited")
    passing_score: int
    questions: list[QuestionPresentation]


# ==============================================================================
# Submission Schemas
# ==============================================================================


class AnswerRequest(BaseModel):
    """Selected options for one question."""

    question_id: UUID
    selected_option_ids: list[UUID] = Field(default_factory=list)


class SubmitAttemptRequest(BaseModel):
    """Submit answers for grading."""

    answers: list[AnswerRequest] = Field(default_factory=list)
    time_spent_seconds: int = Field(
        0, ge=0, description="Elapsed time measured by the client"
    )
    attempt_id: UUID | None = Field(
        None, description="Attempt id returned by the start endpoint"
    )


class AnswerResultResponse(BaseModel):
    """Graded answer."""

    question_id: UUID
    selected_option_ids: list[UUID]
    is_correct: bool
    points_earned: int


class QuizAttemptResponse(BaseModel):
    """Graded attempt."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    quiz_id: UUID
    attempt_number: int
    started_at: datetime
    completed_at: datetime | None = None
    score: int = Field(description="0-100")
    points_earned: int
    total_points: int
    correct_answers: int
    total_questions: int
    is_passed: bool
    time_spent_seconds: int
    timed_out: bool
    answers: list[AnswerResultResponse] = []

    @classmethod
    def from_entity(cls, entity: QuizAttempt) -> "QuizAttemptResponse":
        """Create response from entity."""
        return cls(
            id=entity.id,
            quiz_id=entity.quiz_id,
            attempt_number=entity.attempt_number,
            started_at=entity.started_at,
            completed_at=entity.completed_at,
            score=entity.score,
            points_earned=entity.points_earned,
            total_points=entity.total_points,
            correct_answers=entity.correct_answers,
            total_questions=entity.total_questions,
            is_passed=entity.is_passed,
            time_spent_seconds=entity.time_spent_seconds,
            timed_out=entity.timed_out,
            answers=[
                AnswerResultResponse(
                    question_id=a.question_id,
                    selected_option_ids=sorted(a.selected_option_ids, key=str),
                    is_correct=a.is_correct,
                    points_earned=a.points_earned,
                )
                for a in entity.answers
            ],
        )


class QuizAttemptListResponse(BaseModel):
    """Attempt history of the learner on a quiz."""

    items: list[QuizAttemptResponse]
    total: int
    max_attempts: int
    attempts_remaining: int
    best_score: int | None = None
    passed: bool = False


# ==============================================================================
# Review Schemas
# ==============================================================================


class ReviewOption(BaseModel):
    """Option in a review; correctness only when the quiz reveals it."""

    id: UUID
    text: str
    is_correct: bool | None = None


class ReviewQuestion(BaseModel):
    """Question in a review with the learner's selection."""

    question_id: UUID
    prompt: str
    points: int
    options: list[ReviewOption]
    selected_option_ids: list[UUID]
    is_correct: bool
    points_earned: int


class AttemptReviewResponse(BaseModel):
    """Graded attempt replayed in the order the learner saw it."""

    attempt: QuizAttemptResponse
    show_correct_answers: bool
    questions: list[ReviewQuestion]
