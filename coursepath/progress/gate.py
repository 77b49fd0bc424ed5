"""Session gate evaluator.

A session is unlocked when it is first in course order, when the course does
not require sequential progress, or when its immediate predecessor has been
completed. The ``is_unlocked`` flag stored on session progress is only a
cache of this rule; the rule itself is always the source of truth.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from coursepath.core.errors import NotFoundError

from .models import Enrollment, SessionProgress


if TYPE_CHECKING:
    from coursepath.catalog.resolver import ContentGraphResolver, CourseSequence

    from .repository import ProgressRepository

logger = structlog.get_logger(__name__)

UNLOCK_WRITE_ATTEMPTS = 3


def evaluate_gate(
    sequence: "CourseSequence",
    session_id: UUID,
    predecessor_progress: SessionProgress | None,
) -> bool:
    """Pure unlock rule for ``session_id`` given its predecessor's progress."""
    position = sequence.position_of(session_id)
    if position == 0:
        return True
    if not sequence.course.sequential_progress_required:
        return True
    return predecessor_progress is not None and predecessor_progress.is_completed


class SessionGateEvaluator:
    """Decides and caches session unlock state for an enrollment."""

    def __init__(
        self,
        resolver: "ContentGraphResolver",
        repository: "ProgressRepository",
    ):
        self.resolver = resolver
        self.repository = repository

    async def is_unlocked(self, enrollment_id: UUID, session_id: UUID) -> bool:
        """Whether ``session_id`` is currently unlocked for the enrollment.

        Raises:
            NotFoundError: Unknown enrollment, or session outside the course
        """
        enrollment = await self.repository.get_enrollment(enrollment_id)
        if enrollment is None:
            raise NotFoundError(
                f"Enrollment {enrollment_id} not found", "enrollment_not_found"
            )
        sequence = await self.resolver.resolve(enrollment.course_id)
        return await self.check(enrollment, sequence, session_id)

    async def check(
        self,
        enrollment: Enrollment,
        sequence: "CourseSequence",
        session_id: UUID,
    ) -> bool:
        """Evaluate the gate against an already resolved sequence."""
        predecessor = sequence.predecessor_of(session_id)
        predecessor_progress = None
        if predecessor is not None and sequence.course.sequential_progress_required:
            predecessor_progress = await self.repository.get_session_progress(
                enrollment.user_id, enrollment.course_id, predecessor.id
            )
        return evaluate_gate(sequence, session_id, predecessor_progress)

    async def unlock_successor(
        self,
        enrollment: Enrollment,
        sequence: "CourseSequence",
        session_id: UUID,
    ) -> SessionProgress | None:
        """Cache the unlock of the session following ``session_id``.

        Creates the successor's progress record if absent. Returns None when
        there is no successor or it is still locked.
        """
        successor = sequence.successor_of(session_id)
        if successor is None:
            return None

        if not await self.check(enrollment, sequence, successor.id):
            return None

        for _ in range(UNLOCK_WRITE_ATTEMPTS):
            progress = await self.repository.get_session_progress(
                enrollment.user_id, enrollment.course_id, successor.id
            )
            if progress is not None and progress.is_unlocked:
                return progress

            if progress is None:
                progress = SessionProgress.new(
                    enrollment.user_id, enrollment.course_id, successor.id, enrollment.id
                )
            progress.is_unlocked = True
            progress.last_accessed_at = progress.last_accessed_at or datetime.now(UTC)
            if await self.repository.save_session_progress(progress):
                break
        else:
            # The rule still unlocks the session; only the cached flag is missing
            logger.warning(
                "session_unlock_not_cached",
                enrollment_id=str(enrollment.id),
                session_id=str(successor.id),
            )
            return None

        logger.info(
            "session_unlocked",
            enrollment_id=str(enrollment.id),
            session_id=str(successor.id),
            unlocked_by=str(session_id),
        )
        return progress
