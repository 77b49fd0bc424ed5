"""Pydantic schemas for learner progression.

Request and response models for:
- Watch heartbeats and resource access
- Enrollment progress queries
- Next session lookup
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import EnrollmentStatus, SessionProgress


# ==============================================================================
# Progress Event Schemas
# ==============================================================================


class RecordWatchRequest(BaseModel):
    """Watch heartbeat sent periodically by the player."""

    enrollment_id: UUID = Field(..., description="Enrollment UUID")
    watch_percentage: Decimal = Field(
        ..., ge=0, le=100, description="Furthest watched point, 0-100"
    )
    watch_time_seconds: int = Field(
        ..., ge=0, description="Cumulative watch time reported by the client"
    )


class RecordResourceAccessRequest(BaseModel):
    """Learner opened the session's resources."""

    enrollment_id: UUID = Field(..., description="Enrollment UUID")


class SessionProgressResponse(BaseModel):
    """Stored progress of one session."""

    model_config = ConfigDict(from_attributes=True)

    session_id: UUID
    course_id: UUID
    enrollment_id: UUID
    watch_percentage: Decimal
    watch_time_seconds: int
    video_completed: bool
    resources_accessed: bool
    quiz_passed: bool
    quiz_attempt_count: int
    quiz_score: int | None = None
    is_completed: bool
    is_unlocked: bool
    started_at: datetime | None = None
    completed_at: datetime | None = None
    last_accessed_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: SessionProgress) -> "SessionProgressResponse":
        """Create response from entity."""
        return cls(
            session_id=entity.session_id,
            course_id=entity.course_id,
            enrollment_id=entity.enrollment_id,
            watch_percentage=entity.watch_percentage,
            watch_time_seconds=entity.watch_time_seconds,
            video_completed=entity.video_completed,
            resources_accessed=entity.resources_accessed,
            quiz_passed=entity.quiz_passed,
            quiz_attempt_count=entity.quiz_attempt_count,
            quiz_score=entity.quiz_score,
            is_completed=entity.is_completed,
            is_unlocked=entity.is_unlocked,
            started_at=entity.started_at,
            completed_at=entity.completed_at,
            last_accessed_at=entity.last_accessed_at,
        )


# ==============================================================================
# Enrollment Progress Schemas (Complete View)
# ==============================================================================


class SessionProgressSummary(BaseModel):
    """Per-session state with a live gate evaluation."""

    session_id: UUID
    module_id: UUID
    title: str
    position: int = Field(description="Zero-based position in course order")
    is_unlocked: bool
    is_completed: bool
    watch_percentage: Decimal = Decimal(0)
    resources_accessed: bool = False
    quiz_passed: bool = False
    quiz_attempt_count: int = 0
    quiz_score: int | None = None


class ModuleProgressSummary(BaseModel):
    """Derived module completion."""

    module_id: UUID
    sessions_completed: int
    sessions_total: int
    is_completed: bool


class EnrollmentProgressResponse(BaseModel):
    """Complete progress of an enrollment."""

    enrollment_id: UUID
    course_id: UUID
    status: EnrollmentStatus
    progress_percentage: Decimal
    sessions_completed: int
    sessions_total: int
    final_assessment_required: bool
    final_assessment_passed: bool
    final_assessment_score: int | None = None
    is_completed: bool
    completed_at: datetime | None = None
    modules: list[ModuleProgressSummary] = []
    sessions: list[SessionProgressSummary] = []
    next_session_id: UUID | None = Field(
        None, description="First unlocked session not yet completed"
    )


class NextSessionResponse(BaseModel):
    """Next session to study, absent when the course is finished."""

    enrollment_id: UUID
    session: SessionProgressSummary | None = None
