"""Database models for the course catalog consumed by the engine.

The catalog (courses, modules, sessions, quizzes) is owned by the course
management service; the engine only reads it. Tables are partitioned by
course so that one course structure resolves in a couple of round trips:

- courses: course flags (sequential progress, final assessment)
- modules_by_course / sessions_by_course: full course structure
- sessions: session -> course lookup
- quizzes / quizzes_by_scope: quiz definitions with their tagged scope
- quiz_questions / quiz_question_options: quiz content
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID


class QuizScopeKind(str, Enum):
    """What a quiz is attached to."""

    SESSION = "session"
    MODULE = "module"
    COURSE = "course"


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COURSES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses (
    id UUID PRIMARY KEY,
    title TEXT,
    sequential_progress_required BOOLEAN,
    final_assessment_required BOOLEAN,
    final_assessment_passing_score INT,
    created_at TIMESTAMP
)
"""

MODULES_BY_COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.modules_by_course (
    course_id UUID,
    module_id UUID,
    title TEXT,
    sort_order INT,
    created_at TIMESTAMP,
    PRIMARY KEY (course_id, module_id)
)
"""

SESSIONS_BY_COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.sessions_by_course (
    course_id UUID,
    session_id UUID,
    module_id UUID,
    title TEXT,
    sort_order INT,
    created_at TIMESTAMP,
    required_watch_percentage INT,
    resource_access_required BOOLEAN,
    quiz_completion_required BOOLEAN,
    quiz_passing_score INT,
    max_quiz_attempts INT,
    PRIMARY KEY (course_id, session_id)
)
"""

# Lookup: which course owns a session
SESSIONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.sessions (
    id UUID PRIMARY KEY,
    course_id UUID,
    module_id UUID
)
"""

QUIZZES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quizzes (
    id UUID PRIMARY KEY,
    course_id UUID,
    scope_kind TEXT,
    scope_id UUID,
    title TEXT,
    passing_score INT,
    max_attempts INT,
    time_limit_seconds INT,
    shuffle_questions BOOLEAN,
    shuffle_options BOOLEAN,
    show_correct_answers BOOLEAN,
    created_at TIMESTAMP
)
"""

QUIZZES_BY_SCOPE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quizzes_by_scope (
    scope_kind TEXT,
    scope_id UUID,
    quiz_id UUID,
    PRIMARY KEY ((scope_kind, scope_id), quiz_id)
)
"""

QUIZ_QUESTIONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quiz_questions (
    quiz_id UUID,
    question_id UUID,
    prompt TEXT,
    points INT,
    sort_order INT,
    created_at TIMESTAMP,
    PRIMARY KEY (quiz_id, question_id)
)
"""

QUIZ_QUESTION_OPTIONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quiz_question_options (
    quiz_id UUID,
    question_id UUID,
    option_id UUID,
    text TEXT,
    is_correct BOOLEAN,
    sort_order INT,
    PRIMARY KEY (quiz_id, question_id, option_id)
)
"""

CATALOG_TABLES_CQL = [
    COURSES_TABLE_CQL,
    MODULES_BY_COURSE_TABLE_CQL,
    SESSIONS_BY_COURSE_TABLE_CQL,
    SESSIONS_TABLE_CQL,
    QUIZZES_TABLE_CQL,
    QUIZZES_BY_SCOPE_TABLE_CQL,
    QUIZ_QUESTIONS_TABLE_CQL,
    QUIZ_QUESTION_OPTIONS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class Course:
    """Course flags that drive progression rules."""

    def __init__(
        self,
        id: UUID,
        title: str = "",
        sequential_progress_required: bool = True,
        final_assessment_required: bool = False,
        final_assessment_passing_score: int = 0,
        created_at: datetime | None = None,
    ):
        self.id = id
        self.title = title
        self.sequential_progress_required = sequential_progress_required
        self.final_assessment_required = final_assessment_required
        self.final_assessment_passing_score = final_assessment_passing_score
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)

    @classmethod
    def from_row(cls, row: Any) -> "Course":
        """Create Course instance from Cassandra row."""
        return cls(
            id=row.id,
            title=row.title or "",
            sequential_progress_required=bool(row.sequential_progress_required),
            final_assessment_required=bool(row.final_assessment_required),
            final_assessment_passing_score=row.final_assessment_passing_score or 0,
            created_at=row.created_at,
        )

    def __repr__(self) -> str:
        return f"<Course {self.id} sequential={self.sequential_progress_required}>"


class Module:
    """Module within a course."""

    def __init__(
        self,
        id: UUID,
        course_id: UUID,
        title: str = "",
        sort_order: int = 0,
        created_at: datetime | None = None,
    ):
        self.id = id
        self.course_id = course_id
        self.title = title
        self.sort_order = sort_order
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)

    @classmethod
    def from_row(cls, row: Any) -> "Module":
        """Create Module instance from Cassandra row."""
        return cls(
            id=row.module_id,
            course_id=row.course_id,
            title=row.title or "",
            sort_order=row.sort_order or 0,
            created_at=row.created_at,
        )

    def __repr__(self) -> str:
        return f"<Module {self.id} order={self.sort_order}>"


class Session:
    """Smallest unit of consumable content, with its completion rules.

    Attributes:
        required_watch_percentage: Watch threshold (0-100) for completion
        resource_access_required: Learner must open the session resources
        quiz_completion_required: Learner must pass the session quiz
        quiz_passing_score: Minimum quiz score counted as a pass for the session
        max_quiz_attempts: Session-level cap on quiz attempts
    """

    def __init__(
        self,
        id: UUID,
        module_id: UUID,
        course_id: UUID,
        title: str = "",
        sort_order: int = 0,
        created_at: datetime | None = None,
        required_watch_percentage: int = 0,
        resource_access_required: bool = False,
        quiz_completion_required: bool = False,
        quiz_passing_score: int = 0,
        max_quiz_attempts: int = 3,
    ):
        self.id = id
        self.module_id = module_id
        self.course_id = course_id
        self.title = title
        self.sort_order = sort_order
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.required_watch_percentage = required_watch_percentage
        self.resource_access_required = resource_access_required
        self.quiz_completion_required = quiz_completion_required
        self.quiz_passing_score = quiz_passing_score
        self.max_quiz_attempts = max_quiz_attempts

    @classmethod
    def from_row(cls, row: Any) -> "Session":
        """Create Session instance from a sessions_by_course row."""
        return cls(
            id=row.session_id,
            module_id=row.module_id,
            course_id=row.course_id,
            title=row.title or "",
            sort_order=row.sort_order or 0,
            created_at=row.created_at,
            required_watch_percentage=row.required_watch_percentage or 0,
            resource_access_required=bool(row.resource_access_required),
            quiz_completion_required=bool(row.quiz_completion_required),
            quiz_passing_score=row.quiz_passing_score or 0,
            max_quiz_attempts=(
                row.max_quiz_attempts if row.max_quiz_attempts is not None else 3
            ),
        )

    def __repr__(self) -> str:
        return f"<Session {self.id} module={self.module_id} order={self.sort_order}>"


@dataclass(frozen=True)
class QuizScope:
    """Tagged quiz scope: exactly one parent, named by kind."""

    kind: QuizScopeKind
    id: UUID

    @property
    def is_session(self) -> bool:
        return self.kind == QuizScopeKind.SESSION

    @property
    def is_course(self) -> bool:
        return self.kind == QuizScopeKind.COURSE


class QuestionOption:
    """Answer option of a question."""

    def __init__(
        self,
        id: UUID,
        question_id: UUID,
        text: str = "",
        is_correct: bool = False,
        sort_order: int = 0,
    ):
        self.id = id
        self.question_id = question_id
        self.text = text
        self.is_correct = is_correct
        self.sort_order = sort_order

    @classmethod
    def from_row(cls, row: Any) -> "QuestionOption":
        """Create QuestionOption instance from Cassandra row."""
        return cls(
            id=row.option_id,
            question_id=row.question_id,
            text=row.text or "",
            is_correct=bool(row.is_correct),
            sort_order=row.sort_order or 0,
        )


class Question:
    """Quiz question with its ordered options."""

    def __init__(
        self,
        id: UUID,
        quiz_id: UUID,
        prompt: str = "",
        points: int = 1,
        sort_order: int = 0,
        created_at: datetime | None = None,
        options: list[QuestionOption] | None = None,
    ):
        self.id = id
        self.quiz_id = quiz_id
        self.prompt = prompt
        self.points = points
        self.sort_order = sort_order
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.options = sorted(options or [], key=lambda o: (o.sort_order, str(o.id)))

    @property
    def correct_option_ids(self) -> frozenset[UUID]:
        return frozenset(o.id for o in self.options if o.is_correct)

    @property
    def is_multi_correct(self) -> bool:
        return len(self.correct_option_ids) > 1

    @classmethod
    def from_row(cls, row: Any, options: list[QuestionOption]) -> "Question":
        """Create Question instance from Cassandra row plus its options."""
        return cls(
            id=row.question_id,
            quiz_id=row.quiz_id,
            prompt=row.prompt or "",
            points=row.points if row.points is not None else 1,
            sort_order=row.sort_order or 0,
            created_at=row.created_at,
            options=options,
        )


class Quiz:
    """Quiz definition attached to exactly one session, module or course."""

    def __init__(
        self,
        id: UUID,
        course_id: UUID,
        scope: QuizScope,
        title: str = "",
        passing_score: int = 70,
        max_attempts: int = 3,
        time_limit_seconds: int = 0,
        shuffle_questions: bool = False,
        shuffle_options: bool = False,
        show_correct_answers: bool = False,
        created_at: datetime | None = None,
        questions: list[Question] | None = None,
    ):
        self.id = id
        self.course_id = course_id
        self.scope = scope
        self.title = title
        self.passing_score = passing_score
        self.max_attempts = max_attempts
        self.time_limit_seconds = time_limit_seconds
        self.shuffle_questions = shuffle_questions
        self.shuffle_options = shuffle_options
        self.show_correct_answers = show_correct_answers
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.questions = sorted(
            questions or [], key=lambda q: (q.sort_order, q.created_at, str(q.id))
        )

    @property
    def total_points(self) -> int:
        return sum(q.points for q in self.questions)

    @classmethod
    def from_row(cls, row: Any, questions: list[Question]) -> "Quiz":
        """Create Quiz instance from Cassandra row plus its questions."""
        return cls(
            id=row.id,
            course_id=row.course_id,
            scope=QuizScope(QuizScopeKind(row.scope_kind), row.scope_id),
            title=row.title or "",
            passing_score=row.passing_score or 0,
            max_attempts=row.max_attempts if row.max_attempts is not None else 3,
            time_limit_seconds=row.time_limit_seconds or 0,
            shuffle_questions=bool(row.shuffle_questions),
            shuffle_options=bool(row.shuffle_options),
            show_correct_answers=bool(row.show_correct_answers),
            created_at=row.created_at,
            questions=questions,
        )

    def __repr__(self) -> str:
        return f"<Quiz {self.id} scope={self.scope.kind.value}:{self.scope.id}>"
