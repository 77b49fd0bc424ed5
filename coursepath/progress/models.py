"""Database models for learner progression.

Cassandra table definitions for:
- Enrollments: learner <-> course binding with recomputed rollups
- Enrollment lookup by learner: (user_id, course_id) -> enrollment_id
- Session progress: one row per (learner, session), partitioned per
  (learner, course) so a whole course reads in one query

Enrollment ``status`` is owned by the enrollment/approval service; the
engine only updates rollup columns and the final assessment flag.
"""

import copy
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from coursepath.catalog.models import Session, ensure_utc_aware


class EnrollmentStatus(str, Enum):
    """Enrollment approval status (set externally)."""

    PENDING = "pending"
    PAYMENT_PENDING = "payment_pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


ACTIVE_ENROLLMENT_STATUSES = frozenset(
    {EnrollmentStatus.APPROVED.value, EnrollmentStatus.COMPLETED.value}
)


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments (
    id UUID PRIMARY KEY,
    user_id UUID,
    course_id UUID,
    status TEXT,
    enrolled_at TIMESTAMP,
    progress_percentage DECIMAL,
    sessions_completed INT,
    sessions_total INT,
    final_assessment_passed BOOLEAN,
    final_assessment_score INT,
    completed_at TIMESTAMP,
    last_accessed_at TIMESTAMP
)
"""

# Lookup: enrollment of a learner in a course
ENROLLMENTS_BY_LEARNER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_learner (
    user_id UUID,
    course_id UUID,
    enrollment_id UUID,
    PRIMARY KEY (user_id, course_id)
)
"""

SESSION_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.session_progress (
    user_id UUID,
    course_id UUID,
    session_id UUID,
    enrollment_id UUID,
    watch_percentage DECIMAL,
    watch_time_seconds INT,
    video_completed BOOLEAN,
    resources_accessed BOOLEAN,
    quiz_passed BOOLEAN,
    quiz_attempt_count INT,
    quiz_score INT,
    is_completed BOOLEAN,
    is_unlocked BOOLEAN,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    last_accessed_at TIMESTAMP,
    version INT,
    PRIMARY KEY ((user_id, course_id), session_id)
)
"""

PROGRESS_TABLES_CQL = [
    ENROLLMENTS_TABLE_CQL,
    ENROLLMENTS_BY_LEARNER_TABLE_CQL,
    SESSION_PROGRESS_TABLE_CQL,
]


# ==============================================================================
# Merge Functions
# ==============================================================================


def merge_max(existing: Any, incoming: Any) -> Any:
    """Max-wins merge for monotonic numeric fields."""
    if existing is None:
        return incoming
    if incoming is None:
        return existing
    return max(existing, incoming)


def merge_or(existing: bool, incoming: bool) -> bool:
    """OR merge for monotonic flags."""
    return bool(existing) or bool(incoming)


# ==============================================================================
# Entity Classes
# ==============================================================================


class Enrollment:
    """Learner enrollment in a course.

    Attributes:
        id: Enrollment UUID
        user_id: Learner UUID
        course_id: Course UUID
        status: Approval status (external)
        progress_percentage: 100 * completed / total sessions (recomputed)
        sessions_completed: Completed sessions at last rollup
        sessions_total: Sessions in course at last rollup
        final_assessment_passed: Course-scoped final quiz passed
        final_assessment_score: Best passing final assessment score
        completed_at: First time course completion held (never overwritten)
        last_accessed_at: Last rollup timestamp
    """

    def __init__(
        self,
        id: UUID,
        user_id: UUID,
        course_id: UUID,
        status: str = EnrollmentStatus.PENDING.value,
        enrolled_at: datetime | None = None,
        progress_percentage: Decimal = Decimal(0),
        sessions_completed: int = 0,
        sessions_total: int = 0,
        final_assessment_passed: bool = False,
        final_assessment_score: int | None = None,
        completed_at: datetime | None = None,
        last_accessed_at: datetime | None = None,
    ):
        self.id = id
        self.user_id = user_id
        self.course_id = course_id
        self.status = status
        self.enrolled_at = ensure_utc_aware(enrolled_at) or datetime.now(UTC)
        self.progress_percentage = progress_percentage
        self.sessions_completed = sessions_completed
        self.sessions_total = sessions_total
        self.final_assessment_passed = final_assessment_passed
        self.final_assessment_score = final_assessment_score
        self.completed_at = ensure_utc_aware(completed_at)
        self.last_accessed_at = ensure_utc_aware(last_accessed_at)

    @property
    def is_active(self) -> bool:
        """Approved enrollments (including already completed ones) may progress."""
        return self.status in ACTIVE_ENROLLMENT_STATUSES

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @classmethod
    def from_row(cls, row: Any) -> "Enrollment":
        """Create Enrollment instance from Cassandra row."""
        return cls(
            id=row.id,
            user_id=row.user_id,
            course_id=row.course_id,
            status=row.status or EnrollmentStatus.PENDING.value,
            enrolled_at=row.enrolled_at,
            progress_percentage=row.progress_percentage or Decimal(0),
            sessions_completed=row.sessions_completed or 0,
            sessions_total=row.sessions_total or 0,
            final_assessment_passed=bool(row.final_assessment_passed),
            final_assessment_score=row.final_assessment_score,
            completed_at=row.completed_at,
            last_accessed_at=row.last_accessed_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "course_id": self.course_id,
            "status": self.status,
            "enrolled_at": self.enrolled_at,
            "progress_percentage": self.progress_percentage,
            "sessions_completed": self.sessions_completed,
            "sessions_total": self.sessions_total,
            "final_assessment_passed": self.final_assessment_passed,
            "final_assessment_score": self.final_assessment_score,
            "completed_at": self.completed_at,
            "last_accessed_at": self.last_accessed_at,
        }

    def __repr__(self) -> str:
        return (
            f"<Enrollment {self.id} user={self.user_id} course={self.course_id} "
            f"{self.status} {self.progress_percentage}%>"
        )


class SessionProgress:
    """Progress of one learner on one session.

    Every mutable field only moves forward: percentages and counters by max,
    flags by OR, and ``is_completed`` never reverts once set.
    ``version`` counts stored writes (0 = never stored) and guards the
    compare-and-set that keeps concurrent merges from overwriting each other.
    """

    def __init__(
        self,
        user_id: UUID,
        course_id: UUID,
        session_id: UUID,
        enrollment_id: UUID,
        watch_percentage: Decimal = Decimal(0),
        watch_time_seconds: int = 0,
        video_completed: bool = False,
        resources_accessed: bool = False,
        quiz_passed: bool = False,
        quiz_attempt_count: int = 0,
        quiz_score: int | None = None,
        is_completed: bool = False,
        is_unlocked: bool = False,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
        last_accessed_at: datetime | None = None,
        version: int = 0,
    ):
        self.user_id = user_id
        self.course_id = course_id
        self.session_id = session_id
        self.enrollment_id = enrollment_id
        self.watch_percentage = watch_percentage
        self.watch_time_seconds = watch_time_seconds
        self.video_completed = video_completed
        self.resources_accessed = resources_accessed
        self.quiz_passed = quiz_passed
        self.quiz_attempt_count = quiz_attempt_count
        self.quiz_score = quiz_score
        self.is_completed = is_completed
        self.is_unlocked = is_unlocked
        self.started_at = ensure_utc_aware(started_at)
        self.completed_at = ensure_utc_aware(completed_at)
        self.last_accessed_at = ensure_utc_aware(last_accessed_at)
        self.version = version

    @classmethod
    def new(cls, user_id: UUID, course_id: UUID, session_id: UUID, enrollment_id: UUID):
        """Fresh record for a first interaction."""
        return cls(
            user_id=user_id,
            course_id=course_id,
            session_id=session_id,
            enrollment_id=enrollment_id,
            started_at=datetime.now(UTC),
        )

    def meets_completion_criteria(self, session: Session) -> bool:
        """Watch, resource and quiz requirements of ``session`` all satisfied."""
        return (
            self.watch_percentage >= session.required_watch_percentage
            and (not session.resource_access_required or self.resources_accessed)
            and (not session.quiz_completion_required or self.quiz_passed)
        )

    def durable_state(self) -> tuple:
        """Fields that define progression state (timestamps of access excluded)."""
        return (
            self.watch_percentage,
            self.watch_time_seconds,
            self.video_completed,
            self.resources_accessed,
            self.quiz_passed,
            self.quiz_attempt_count,
            self.quiz_score,
            self.is_completed,
            self.is_unlocked,
        )

    def clone(self) -> "SessionProgress":
        return copy.copy(self)

    @classmethod
    def from_row(cls, row: Any) -> "SessionProgress":
        """Create SessionProgress instance from Cassandra row."""
        return cls(
            user_id=row.user_id,
            course_id=row.course_id,
            session_id=row.session_id,
            enrollment_id=row.enrollment_id,
            watch_percentage=row.watch_percentage or Decimal(0),
            watch_time_seconds=row.watch_time_seconds or 0,
            video_completed=bool(row.video_completed),
            resources_accessed=bool(row.resources_accessed),
            quiz_passed=bool(row.quiz_passed),
            quiz_attempt_count=row.quiz_attempt_count or 0,
            quiz_score=row.quiz_score,
            is_completed=bool(row.is_completed),
            is_unlocked=bool(row.is_unlocked),
            started_at=row.started_at,
            completed_at=row.completed_at,
            last_accessed_at=row.last_accessed_at,
            version=row.version or 0,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "user_id": self.user_id,
            "course_id": self.course_id,
            "session_id": self.session_id,
            "enrollment_id": self.enrollment_id,
            "watch_percentage": self.watch_percentage,
            "watch_time_seconds": self.watch_time_seconds,
            "video_completed": self.video_completed,
            "resources_accessed": self.resources_accessed,
            "quiz_passed": self.quiz_passed,
            "quiz_attempt_count": self.quiz_attempt_count,
            "quiz_score": self.quiz_score,
            "is_completed": self.is_completed,
            "is_unlocked": self.is_unlocked,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "last_accessed_at": self.last_accessed_at,
        }

    def __repr__(self) -> str:
        return (
            f"<SessionProgress user={self.user_id} session={self.session_id} "
            f"{self.watch_percentage}% completed={self.is_completed}>"
        )
