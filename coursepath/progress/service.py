"""Enrollment progress queries.

Builds the learner-facing view of an enrollment: stored session progress
combined with a live gate evaluation for every session, the derived module
rollup and the next session to study. When the stored enrollment rollup is
stale (a cascade was interrupted) the view triggers the pipeline again.
"""

from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from coursepath.core.context import bind_enrollment
from coursepath.core.errors import EnrollmentNotActiveError, NotFoundError, StateError

from .aggregator import compute_rollup
from .gate import evaluate_gate
from .models import Enrollment, EnrollmentStatus, SessionProgress
from .schemas import (
    EnrollmentProgressResponse,
    ModuleProgressSummary,
    NextSessionResponse,
    SessionProgressSummary,
)


if TYPE_CHECKING:
    from coursepath.catalog.resolver import ContentGraphResolver, CourseSequence
    from coursepath.certificates.models import Certificate

    from .pipeline import CompletionPipeline
    from .repository import ProgressRepository

logger = structlog.get_logger(__name__)


class ProgressService:
    """Read side of learner progression."""

    def __init__(
        self,
        resolver: "ContentGraphResolver",
        repository: "ProgressRepository",
        pipeline: "CompletionPipeline",
    ):
        self.resolver = resolver
        self.repository = repository
        self.pipeline = pipeline

    async def _get_owned_enrollment(
        self, user_id: UUID, enrollment_id: UUID
    ) -> Enrollment:
        enrollment = await self.repository.get_enrollment(enrollment_id)
        if enrollment is None or enrollment.user_id != user_id:
            raise NotFoundError(
                f"Enrollment {enrollment_id} not found", "enrollment_not_found"
            )
        bind_enrollment(enrollment.id, enrollment.course_id)
        return enrollment

    def _session_summaries(
        self,
        sequence: "CourseSequence",
        progress: dict[UUID, SessionProgress],
    ) -> list[SessionProgressSummary]:
        summaries = []
        for position, session in enumerate(sequence.sessions):
            predecessor = sequence.predecessor_of(session.id)
            record = progress.get(session.id)
            summaries.append(
                SessionProgressSummary(
                    session_id=session.id,
                    module_id=session.module_id,
                    title=session.title,
                    position=position,
                    is_unlocked=evaluate_gate(
                        sequence,
                        session.id,
                        progress.get(predecessor.id) if predecessor else None,
                    ),
                    is_completed=bool(record and record.is_completed),
                    watch_percentage=record.watch_percentage if record else 0,
                    resources_accessed=bool(record and record.resources_accessed),
                    quiz_passed=bool(record and record.quiz_passed),
                    quiz_attempt_count=record.quiz_attempt_count if record else 0,
                    quiz_score=record.quiz_score if record else None,
                )
            )
        return summaries

    @staticmethod
    def _next_session(
        summaries: list[SessionProgressSummary],
    ) -> SessionProgressSummary | None:
        return next(
            (s for s in summaries if s.is_unlocked and not s.is_completed), None
        )

    async def get_enrollment_progress(
        self, user_id: UUID, enrollment_id: UUID
    ) -> EnrollmentProgressResponse:
        """Get the complete progress view of an enrollment.

        Raises:
            NotFoundError: Unknown enrollment or course
        """
        enrollment = await self._get_owned_enrollment(user_id, enrollment_id)
        sequence = await self.resolver.resolve(enrollment.course_id)
        progress = await self.repository.get_course_progress(
            enrollment.user_id, enrollment.course_id
        )
        rollup = compute_rollup(sequence, progress, enrollment)

        stale = (
            enrollment.sessions_completed != rollup.sessions_completed
            or enrollment.sessions_total != rollup.sessions_total
            or (rollup.is_course_completed and enrollment.completed_at is None)
        )
        if stale and enrollment.is_active:
            logger.info(
                "enrollment_rollup_stale",
                enrollment_id=str(enrollment.id),
                stored_completed=enrollment.sessions_completed,
                actual_completed=rollup.sessions_completed,
            )
            rollup = await self.pipeline.aggregate_and_certify(enrollment, sequence)

        summaries = self._session_summaries(sequence, progress)
        next_session = self._next_session(summaries)

        return EnrollmentProgressResponse(
            enrollment_id=enrollment.id,
            course_id=enrollment.course_id,
            status=EnrollmentStatus(enrollment.status),
            progress_percentage=rollup.progress_percentage,
            sessions_completed=rollup.sessions_completed,
            sessions_total=rollup.sessions_total,
            final_assessment_required=sequence.course.final_assessment_required,
            final_assessment_passed=enrollment.final_assessment_passed,
            final_assessment_score=enrollment.final_assessment_score,
            is_completed=enrollment.is_completed,
            completed_at=enrollment.completed_at,
            modules=[
                ModuleProgressSummary(
                    module_id=m.module_id,
                    sessions_completed=m.sessions_completed,
                    sessions_total=m.sessions_total,
                    is_completed=m.is_completed,
                )
                for m in rollup.modules
            ],
            sessions=summaries,
            next_session_id=next_session.session_id if next_session else None,
        )

    async def get_next_session(
        self, user_id: UUID, enrollment_id: UUID
    ) -> NextSessionResponse:
        """First unlocked, incomplete session in course order."""
        enrollment = await self._get_owned_enrollment(user_id, enrollment_id)
        sequence = await self.resolver.resolve(enrollment.course_id)
        progress = await self.repository.get_course_progress(
            enrollment.user_id, enrollment.course_id
        )
        summaries = self._session_summaries(sequence, progress)
        return NextSessionResponse(
            enrollment_id=enrollment.id, session=self._next_session(summaries)
        )

    async def claim_certificate(self, user_id: UUID, course_id: UUID) -> "Certificate":
        """Re-run rollup and issuance for a learner's course.

        Recovers from a cascade that was interrupted after the session write.

        Raises:
            NotFoundError: No enrollment in the course
            EnrollmentNotActiveError: Enrollment not approved
            StateError: Course not completed yet
        """
        enrollment = await self.repository.get_enrollment_for_learner(
            user_id, course_id
        )
        if enrollment is None:
            raise NotFoundError(
                f"No enrollment in course {course_id}", "enrollment_not_found"
            )
        if not enrollment.is_active:
            raise EnrollmentNotActiveError(
                f"Enrollment {enrollment.id} is {enrollment.status}"
            )

        await self.pipeline.aggregate_and_certify(enrollment)
        certificate = await self.pipeline.issuer.get_certificate(user_id, course_id)
        if certificate is None:
            raise StateError(
                f"Course {course_id} is not completed", "course_not_completed"
            )
        return certificate
