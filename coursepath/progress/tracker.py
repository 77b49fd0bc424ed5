"""Watch progress tracker.

Records watch heartbeats and resource access for a learner's session. Each
update is read, merged into the stored record and written back with a
compare-and-set on the row version: percentages and watch time by max, flags
by OR. A write that loses to a concurrent one is merged again on the fresh
row. Completion is re-evaluated after every merge and the completion pipeline
runs only for the write that moved the row from incomplete to completed, so
repeated, reordered or overlapping heartbeats neither regress progress nor
cascade twice.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from coursepath.catalog.models import Session
from coursepath.core.context import bind_enrollment
from coursepath.core.errors import (
    EnrollmentNotActiveError,
    NotFoundError,
    ProgressWriteConflictError,
    SessionLockedError,
    ValidationError,
)

from .models import Enrollment, SessionProgress, merge_max, merge_or


if TYPE_CHECKING:
    from coursepath.catalog.resolver import ContentGraphResolver, CourseSequence

    from .gate import SessionGateEvaluator
    from .pipeline import CompletionPipeline
    from .repository import ProgressRepository

logger = structlog.get_logger(__name__)


@dataclass
class SessionContext:
    """Everything a progress write needs, loaded and access-checked."""

    enrollment: Enrollment
    sequence: "CourseSequence"
    session: Session
    progress: SessionProgress | None


class WatchProgressTracker:
    """Applies learner progress events to session progress."""

    def __init__(
        self,
        resolver: "ContentGraphResolver",
        repository: "ProgressRepository",
        gate: "SessionGateEvaluator",
        pipeline: "CompletionPipeline",
        write_retries: int = 5,
    ):
        self.resolver = resolver
        self.repository = repository
        self.gate = gate
        self.pipeline = pipeline
        self.write_retries = write_retries

    # ==========================================================================
    # Access
    # ==========================================================================

    async def load_enrollment(self, user_id: UUID, enrollment_id: UUID) -> Enrollment:
        """Load an enrollment owned by ``user_id``.

        Raises:
            NotFoundError: Unknown enrollment, or owned by another learner
        """
        enrollment = await self.repository.get_enrollment(enrollment_id)
        if enrollment is None or enrollment.user_id != user_id:
            raise NotFoundError(
                f"Enrollment {enrollment_id} not found", "enrollment_not_found"
            )
        bind_enrollment(enrollment.id, enrollment.course_id)
        return enrollment

    async def load_session_context(
        self,
        user_id: UUID,
        session_id: UUID,
        enrollment: Enrollment,
        sequence: "CourseSequence | None" = None,
    ) -> SessionContext:
        """Resolve the session inside the enrollment's course and check access.

        Raises:
            NotFoundError: Session not part of the enrollment's course
            EnrollmentNotActiveError: Enrollment not approved
            SessionLockedError: Gate rule says the session is locked
        """
        if sequence is None:
            sequence = await self.resolver.resolve(enrollment.course_id)
        session = sequence.get(session_id)

        if not enrollment.is_active:
            raise EnrollmentNotActiveError(
                f"Enrollment {enrollment.id} is {enrollment.status}"
            )

        progress = await self.repository.get_session_progress(
            user_id, enrollment.course_id, session_id
        )
        # A cached unlock is trusted; otherwise the rule decides
        if progress is None or not progress.is_unlocked:
            if not await self.gate.check(enrollment, sequence, session_id):
                raise SessionLockedError(f"Session {session_id} is locked")

        return SessionContext(
            enrollment=enrollment,
            sequence=sequence,
            session=session,
            progress=progress,
        )

    # ==========================================================================
    # Events
    # ==========================================================================

    async def record_watch(
        self,
        user_id: UUID,
        session_id: UUID,
        enrollment_id: UUID,
        watch_percentage: Decimal | float | int,
        watch_time_seconds: int,
    ) -> SessionProgress:
        """Record a watch heartbeat.

        Raises:
            ValidationError: Percentage outside [0, 100] or negative watch time
        """
        watch_percentage = Decimal(str(watch_percentage))
        if not Decimal(0) <= watch_percentage <= Decimal(100):
            raise ValidationError(
                "watch_percentage must be between 0 and 100", "invalid_watch_percentage"
            )
        if watch_time_seconds < 0:
            raise ValidationError(
                "watch_time_seconds must not be negative", "invalid_watch_time"
            )

        enrollment = await self.load_enrollment(user_id, enrollment_id)
        ctx = await self.load_session_context(user_id, session_id, enrollment)
        required = ctx.session.required_watch_percentage

        def apply(progress: SessionProgress) -> None:
            progress.watch_percentage = merge_max(
                progress.watch_percentage, watch_percentage
            )
            progress.watch_time_seconds = merge_max(
                progress.watch_time_seconds, watch_time_seconds
            )
            progress.video_completed = merge_or(
                progress.video_completed, progress.watch_percentage >= required
            )

        return await self.commit_progress(ctx, apply)

    async def record_resource_access(
        self,
        user_id: UUID,
        session_id: UUID,
        enrollment_id: UUID,
    ) -> SessionProgress:
        """Record that the learner opened the session's resources."""
        enrollment = await self.load_enrollment(user_id, enrollment_id)
        ctx = await self.load_session_context(user_id, session_id, enrollment)

        def apply(progress: SessionProgress) -> None:
            progress.resources_accessed = merge_or(progress.resources_accessed, True)

        return await self.commit_progress(ctx, apply)

    # ==========================================================================
    # Commit
    # ==========================================================================

    def working_copy(self, ctx: SessionContext) -> SessionProgress:
        """Mutable copy of the stored progress, or a fresh record."""
        if ctx.progress is None:
            return SessionProgress.new(
                ctx.enrollment.user_id,
                ctx.enrollment.course_id,
                ctx.session.id,
                ctx.enrollment.id,
            )
        return ctx.progress.clone()

    async def commit_progress(
        self,
        ctx: SessionContext,
        apply: Callable[[SessionProgress], None],
    ) -> SessionProgress:
        """Merge an event into the stored progress and cascade on completion.

        ``apply`` merges the event into a copy of the stored record. When a
        concurrent writer changed the row first, the row is re-read and the
        merge applied again, so no max/OR update is lost. The cascade runs
        only for the write that moved the row to completed.

        Raises:
            ProgressWriteConflictError: The row kept changing for every retry
        """
        for _ in range(self.write_retries):
            previous = ctx.progress
            progress = self.working_copy(ctx)
            apply(progress)

            now = datetime.now(UTC)
            progress.is_unlocked = True
            if not progress.is_completed and progress.meets_completion_criteria(
                ctx.session
            ):
                progress.is_completed = True
                progress.completed_at = now
            progress.last_accessed_at = now

            if previous is not None and previous.durable_state() == progress.durable_state():
                await self.repository.touch_session_progress(progress)
                logger.debug(
                    "session_progress_unchanged",
                    enrollment_id=str(ctx.enrollment.id),
                    session_id=str(ctx.session.id),
                )
                return progress

            if await self.repository.save_session_progress(progress):
                break

            ctx.progress = await self.repository.get_session_progress(
                ctx.enrollment.user_id, ctx.enrollment.course_id, ctx.session.id
            )
        else:
            logger.warning(
                "session_progress_write_abandoned",
                enrollment_id=str(ctx.enrollment.id),
                session_id=str(ctx.session.id),
                retries=self.write_retries,
            )
            raise ProgressWriteConflictError(
                f"Progress of session {ctx.session.id} changed concurrently, try again"
            )

        ctx.progress = progress
        logger.debug(
            "session_progress_updated",
            enrollment_id=str(ctx.enrollment.id),
            session_id=str(ctx.session.id),
            version=progress.version,
            watch_percentage=str(progress.watch_percentage),
            resources_accessed=progress.resources_accessed,
            quiz_passed=progress.quiz_passed,
        )

        if progress.is_completed and not (previous is not None and previous.is_completed):
            logger.info(
                "session_completed",
                enrollment_id=str(ctx.enrollment.id),
                user_id=str(ctx.enrollment.user_id),
                session_id=str(ctx.session.id),
            )
            await self.pipeline.on_session_completed(
                ctx.enrollment, ctx.sequence, ctx.session.id
            )

        return progress
