"""Database models for quiz attempts.

Cassandra table definitions for:
- Quiz attempts: one row per (quiz, learner, attempt number); the attempt
  number slot is claimed with a lightweight transaction
- Attempt lookup by id
- Graded answers per attempt
- Started attempts: reserved attempt ids awaiting submission
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from coursepath.catalog.models import ensure_utc_aware


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

QUIZ_ATTEMPTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quiz_attempts (
    quiz_id UUID,
    user_id UUID,
    attempt_number INT,
    id UUID,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    score INT,
    total_points INT,
    points_earned INT,
    correct_answers INT,
    total_questions INT,
    is_passed BOOLEAN,
    time_spent_seconds INT,
    timed_out BOOLEAN,
    PRIMARY KEY ((quiz_id, user_id), attempt_number)
) WITH CLUSTERING ORDER BY (attempt_number ASC)
"""

# Lookup: attempt by id
QUIZ_ATTEMPTS_BY_ID_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quiz_attempts_by_id (
    id UUID PRIMARY KEY,
    quiz_id UUID,
    user_id UUID,
    attempt_number INT
)
"""

QUIZ_ATTEMPT_ANSWERS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quiz_attempt_answers (
    attempt_id UUID,
    question_id UUID,
    selected_option_ids SET<UUID>,
    is_correct BOOLEAN,
    points_earned INT,
    PRIMARY KEY ((attempt_id), question_id)
)
"""

QUIZ_ATTEMPT_STARTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quiz_attempt_starts (
    quiz_id UUID,
    user_id UUID,
    attempt_id UUID,
    started_at TIMESTAMP,
    PRIMARY KEY ((quiz_id, user_id), attempt_id)
)
"""

QUIZ_TABLES_CQL = [
    QUIZ_ATTEMPTS_TABLE_CQL,
    QUIZ_ATTEMPTS_BY_ID_TABLE_CQL,
    QUIZ_ATTEMPT_ANSWERS_TABLE_CQL,
    QUIZ_ATTEMPT_STARTS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class QuestionAnswer:
    """Graded answer to one question of an attempt."""

    def __init__(
        self,
        attempt_id: UUID,
        question_id: UUID,
        selected_option_ids: frozenset[UUID] | set[UUID] | None = None,
        is_correct: bool = False,
        points_earned: int = 0,
    ):
        self.attempt_id = attempt_id
        self.question_id = question_id
        self.selected_option_ids = frozenset(selected_option_ids or ())
        self.is_correct = is_correct
        self.points_earned = points_earned

    @classmethod
    def from_row(cls, row: Any) -> "QuestionAnswer":
        """Create QuestionAnswer instance from Cassandra row."""
        return cls(
            attempt_id=row.attempt_id,
            question_id=row.question_id,
            selected_option_ids=row.selected_option_ids,
            is_correct=bool(row.is_correct),
            points_earned=row.points_earned or 0,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "attempt_id": self.attempt_id,
            "question_id": self.question_id,
            "selected_option_ids": sorted(self.selected_option_ids, key=str),
            "is_correct": self.is_correct,
            "points_earned": self.points_earned,
        }


class QuizAttempt:
    """Graded, immutable quiz attempt.

    Attributes:
        id: Attempt UUID (also seeds the presentation order)
        attempt_number: 1-based, unique per (quiz, learner)
        score: Percentage 0-100, rounded half up
        timed_out: Submitted after the time limit; graded on answers present
    """

    def __init__(
        self,
        id: UUID,
        quiz_id: UUID,
        user_id: UUID,
        attempt_number: int,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
        score: int = 0,
        total_points: int = 0,
        points_earned: int = 0,
        correct_answers: int = 0,
        total_questions: int = 0,
        is_passed: bool = False,
        time_spent_seconds: int = 0,
        timed_out: bool = False,
        answers: list[QuestionAnswer] | None = None,
    ):
        self.id = id
        self.quiz_id = quiz_id
        self.user_id = user_id
        self.attempt_number = attempt_number
        self.started_at = ensure_utc_aware(started_at) or datetime.now(UTC)
        self.completed_at = ensure_utc_aware(completed_at)
        self.score = score
        self.total_points = total_points
        self.points_earned = points_earned
        self.correct_answers = correct_answers
        self.total_questions = total_questions
        self.is_passed = is_passed
        self.time_spent_seconds = time_spent_seconds
        self.timed_out = timed_out
        self.answers = answers or []

    @classmethod
    def from_row(
        cls, row: Any, answers: list[QuestionAnswer] | None = None
    ) -> "QuizAttempt":
        """Create QuizAttempt instance from a quiz_attempts row."""
        return cls(
            id=row.id,
            quiz_id=row.quiz_id,
            user_id=row.user_id,
            attempt_number=row.attempt_number,
            started_at=row.started_at,
            completed_at=row.completed_at,
            score=row.score or 0,
            total_points=row.total_points or 0,
            points_earned=row.points_earned or 0,
            correct_answers=row.correct_answers or 0,
            total_questions=row.total_questions or 0,
            is_passed=bool(row.is_passed),
            time_spent_seconds=row.time_spent_seconds or 0,
            timed_out=bool(row.timed_out),
            answers=answers,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "quiz_id": self.quiz_id,
            "user_id": self.user_id,
            "attempt_number": self.attempt_number,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "score": self.score,
            "total_points": self.total_points,
            "points_earned": self.points_earned,
            "correct_answers": self.correct_answers,
            "total_questions": self.total_questions,
            "is_passed": self.is_passed,
            "time_spent_seconds": self.time_spent_seconds,
            "timed_out": self.timed_out,
            "answers": [a.to_dict() for a in self.answers],
        }

    def __repr__(self) -> str:
        return (
            f"<QuizAttempt {self.id} quiz={self.quiz_id} #{self.attempt_number} "
            f"score={self.score} passed={self.is_passed}>"
        )


class AttemptStart:
    """Reserved attempt id with its server-side start time."""

    def __init__(
        self,
        quiz_id: UUID,
        user_id: UUID,
        attempt_id: UUID,
        started_at: datetime | None = None,
    ):
        self.quiz_id = quiz_id
        self.user_id = user_id
        self.attempt_id = attempt_id
        self.started_at = ensure_utc_aware(started_at) or datetime.now(UTC)

    @classmethod
    def from_row(cls, row: Any) -> "AttemptStart":
        """Create AttemptStart instance from Cassandra row."""
        return cls(
            quiz_id=row.quiz_id,
            user_id=row.user_id,
            attempt_id=row.attempt_id,
            started_at=row.started_at,
        )
