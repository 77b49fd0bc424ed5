"""Learner progression API endpoints.

Provides routes for:
- Watch heartbeats (sent periodically by the player)
- Resource access
- Enrollment progress and next session queries
"""

from uuid import UUID

from fastapi import APIRouter

from coursepath.auth.dependencies import CurrentLearner
from coursepath.core.errors import EngineError, handle_engine_error

from .dependencies import ProgressServiceDep, ProgressTrackerDep
from .schemas import (
    EnrollmentProgressResponse,
    NextSessionResponse,
    RecordResourceAccessRequest,
    RecordWatchRequest,
    SessionProgressResponse,
)


router = APIRouter(prefix="/v1/progress", tags=["progress"])


# ==============================================================================
# Progress Event Endpoints
# ==============================================================================


@router.put(
    "/sessions/{session_id}/watch",
    response_model=SessionProgressResponse,
    summary="Record watch progress",
)
async def record_watch_progress(
    session_id: UUID,
    data: RecordWatchRequest,
    tracker: ProgressTrackerDep,
    learner: CurrentLearner,
) -> SessionProgressResponse:
    """Record a watch heartbeat.

    Progress never decreases: stale or reordered heartbeats are merged by max.
    Completing the session unlocks the next one and updates the enrollment.
    """
    try:
        progress = await tracker.record_watch(
            user_id=learner.id,
            session_id=session_id,
            enrollment_id=data.enrollment_id,
            watch_percentage=data.watch_percentage,
            watch_time_seconds=data.watch_time_seconds,
        )
    except EngineError as e:
        raise handle_engine_error(e) from e
    return SessionProgressResponse.from_entity(progress)


@router.post(
    "/sessions/{session_id}/resources",
    response_model=SessionProgressResponse,
    summary="Record resource access",
)
async def record_resource_access(
    session_id: UUID,
    data: RecordResourceAccessRequest,
    tracker: ProgressTrackerDep,
    learner: CurrentLearner,
) -> SessionProgressResponse:
    """Mark the session's resources as accessed."""
    try:
        progress = await tracker.record_resource_access(
            user_id=learner.id,
            session_id=session_id,
            enrollment_id=data.enrollment_id,
        )
    except EngineError as e:
        raise handle_engine_error(e) from e
    return SessionProgressResponse.from_entity(progress)


# ==============================================================================
# Progress Query Endpoints
# ==============================================================================


@router.get(
    "/enrollments/{enrollment_id}",
    response_model=EnrollmentProgressResponse,
    summary="Get enrollment progress",
)
async def get_enrollment_progress(
    enrollment_id: UUID,
    progress_service: ProgressServiceDep,
    learner: CurrentLearner,
) -> EnrollmentProgressResponse:
    """Get per-session state, module rollup and overall percentage."""
    try:
        return await progress_service.get_enrollment_progress(learner.id, enrollment_id)
    except EngineError as e:
        raise handle_engine_error(e) from e


@router.get(
    "/enrollments/{enrollment_id}/next",
    response_model=NextSessionResponse,
    summary="Get next session",
)
async def get_next_session(
    enrollment_id: UUID,
    progress_service: ProgressServiceDep,
    learner: CurrentLearner,
) -> NextSessionResponse:
    """First unlocked session that is not completed yet."""
    try:
        return await progress_service.get_next_session(learner.id, enrollment_id)
    except EngineError as e:
        raise handle_engine_error(e) from e
