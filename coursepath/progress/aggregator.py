"""Completion aggregator.

Rolls session completion up into module and course completion and writes
the recomputed enrollment percentage. Module completion is derived, never
stored. Course completion additionally requires the final assessment when
the course asks for one, and is impossible for a course without sessions.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from coursepath.utils.numbers import percentage

from .models import Enrollment, SessionProgress


if TYPE_CHECKING:
    from coursepath.catalog.resolver import ContentGraphResolver, CourseSequence

    from .repository import ProgressRepository

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ModuleRollup:
    module_id: UUID
    sessions_completed: int
    sessions_total: int

    @property
    def is_completed(self) -> bool:
        # A module without sessions does not block the course
        return self.sessions_completed == self.sessions_total


@dataclass(frozen=True)
class EnrollmentRollup:
    progress_percentage: Decimal
    sessions_completed: int
    sessions_total: int
    final_assessment_satisfied: bool
    modules: list[ModuleRollup] = field(default_factory=list)

    @property
    def all_modules_completed(self) -> bool:
        return all(m.is_completed for m in self.modules)

    @property
    def is_course_completed(self) -> bool:
        return (
            self.sessions_total > 0
            and self.all_modules_completed
            and self.final_assessment_satisfied
        )


def compute_rollup(
    sequence: "CourseSequence",
    progress_by_session: dict[UUID, SessionProgress],
    enrollment: Enrollment,
) -> EnrollmentRollup:
    """Pure rollup of session completion over the resolved course."""

    def completed(session_id: UUID) -> bool:
        progress = progress_by_session.get(session_id)
        return progress is not None and progress.is_completed

    modules = [
        ModuleRollup(
            module_id=module_id,
            sessions_completed=sum(1 for s in sessions if completed(s.id)),
            sessions_total=len(sessions),
        )
        for module_id, sessions in sequence.sessions_by_module().items()
    ]
    sessions_completed = sum(m.sessions_completed for m in modules)
    sessions_total = len(sequence)

    return EnrollmentRollup(
        progress_percentage=percentage(sessions_completed, sessions_total),
        sessions_completed=sessions_completed,
        sessions_total=sessions_total,
        final_assessment_satisfied=(
            not sequence.course.final_assessment_required
            or enrollment.final_assessment_passed
        ),
        modules=modules,
    )


class CompletionAggregator:
    """Recomputes and persists enrollment rollups."""

    def __init__(
        self,
        resolver: "ContentGraphResolver",
        repository: "ProgressRepository",
    ):
        self.resolver = resolver
        self.repository = repository

    async def recompute(
        self,
        enrollment: Enrollment,
        sequence: "CourseSequence | None" = None,
    ) -> EnrollmentRollup:
        """Recompute the rollup and write it back to the enrollment.

        ``completed_at`` is set the first time course completion holds and is
        never overwritten afterwards.
        """
        if sequence is None:
            sequence = await self.resolver.resolve(enrollment.course_id)

        progress = await self.repository.get_course_progress(
            enrollment.user_id, enrollment.course_id
        )
        rollup = compute_rollup(sequence, progress, enrollment)
        now = datetime.now(UTC)

        enrollment.progress_percentage = rollup.progress_percentage
        enrollment.sessions_completed = rollup.sessions_completed
        enrollment.sessions_total = rollup.sessions_total
        enrollment.last_accessed_at = now

        if rollup.is_course_completed and enrollment.completed_at is None:
            enrollment.completed_at = now
            logger.info(
                "course_completed",
                enrollment_id=str(enrollment.id),
                user_id=str(enrollment.user_id),
                course_id=str(enrollment.course_id),
            )

        await self.repository.save_enrollment_rollup(enrollment)

        logger.debug(
            "enrollment_rollup_recomputed",
            enrollment_id=str(enrollment.id),
            progress=str(rollup.progress_percentage),
            completed=rollup.sessions_completed,
            total=rollup.sessions_total,
        )
        return rollup
