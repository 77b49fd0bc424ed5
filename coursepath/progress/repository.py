"""Persistence for enrollments and session progress."""

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from .models import Enrollment, SessionProgress


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


class ProgressRepository:
    """Reads enrollments and reads/writes session progress."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        # Enrollments
        self._get_enrollment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments WHERE id = ?
        """)

        self._get_enrollment_lookup = self.session.prepare(f"""
            SELECT enrollment_id FROM {self.keyspace}.enrollments_by_learner
            WHERE user_id = ? AND course_id = ?
        """)

        # Only rollup columns: status belongs to the enrollment service
        self._update_enrollment_rollup = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET progress_percentage = ?, sessions_completed = ?, sessions_total = ?,
                completed_at = ?, last_accessed_at = ?
            WHERE id = ?
        """)

        self._update_final_assessment = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET final_assessment_passed = ?, final_assessment_score = ?
            WHERE id = ?
        """)

        # Session progress
        self._get_session_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.session_progress
            WHERE user_id = ? AND course_id = ? AND session_id = ?
        """)

        self._get_course_session_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.session_progress
            WHERE user_id = ? AND course_id = ?
        """)

        # Progress rows are written with compare-and-set on ``version`` so
        # concurrent merges are retried instead of overwriting each other
        self._insert_session_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.session_progress
            (user_id, course_id, session_id, enrollment_id, watch_percentage,
             watch_time_seconds, video_completed, resources_accessed, quiz_passed,
             quiz_attempt_count, quiz_score, is_completed, is_unlocked,
             started_at, completed_at, last_accessed_at, version)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._update_session_progress = self.session.prepare(f"""
            UPDATE {self.keyspace}.session_progress
            SET enrollment_id = ?, watch_percentage = ?, watch_time_seconds = ?,
                video_completed = ?, resources_accessed = ?, quiz_passed = ?,
                quiz_attempt_count = ?, quiz_score = ?, is_completed = ?,
                is_unlocked = ?, started_at = ?, completed_at = ?,
                last_accessed_at = ?, version = ?
            WHERE user_id = ? AND course_id = ? AND session_id = ?
            IF version = ?
        """)

        self._touch_session_progress = self.session.prepare(f"""
            UPDATE {self.keyspace}.session_progress SET last_accessed_at = ?
            WHERE user_id = ? AND course_id = ? AND session_id = ?
        """)

    # ==========================================================================
    # Enrollments
    # ==========================================================================

    async def get_enrollment(self, enrollment_id: UUID) -> Enrollment | None:
        """Get enrollment by id."""
        result = await self.session.aexecute(self._get_enrollment, [enrollment_id])
        row = result.one()
        return Enrollment.from_row(row) if row else None

    async def get_enrollment_for_learner(
        self, user_id: UUID, course_id: UUID
    ) -> Enrollment | None:
        """Get a learner's enrollment in a course."""
        result = await self.session.aexecute(
            self._get_enrollment_lookup, [user_id, course_id]
        )
        row = result.one()
        if not row:
            return None
        return await self.get_enrollment(row.enrollment_id)

    async def save_enrollment_rollup(self, enrollment: Enrollment) -> None:
        """Persist recomputed rollup columns."""
        await self.session.aexecute(
            self._update_enrollment_rollup,
            [
                enrollment.progress_percentage,
                enrollment.sessions_completed,
                enrollment.sessions_total,
                enrollment.completed_at,
                enrollment.last_accessed_at or datetime.now(UTC),
                enrollment.id,
            ],
        )

    async def save_final_assessment(self, enrollment: Enrollment) -> None:
        """Persist the final assessment flag and score."""
        await self.session.aexecute(
            self._update_final_assessment,
            [
                enrollment.final_assessment_passed,
                enrollment.final_assessment_score,
                enrollment.id,
            ],
        )

    # ==========================================================================
    # Session Progress
    # ==========================================================================

    async def get_session_progress(
        self, user_id: UUID, course_id: UUID, session_id: UUID
    ) -> SessionProgress | None:
        """Get progress for one session."""
        result = await self.session.aexecute(
            self._get_session_progress, [user_id, course_id, session_id]
        )
        row = result.one()
        return SessionProgress.from_row(row) if row else None

    async def get_course_progress(
        self, user_id: UUID, course_id: UUID
    ) -> dict[UUID, SessionProgress]:
        """Get all session progress of a learner in a course, keyed by session."""
        rows = await self.session.aexecute(
            self._get_course_session_progress, [user_id, course_id]
        )
        progress = [SessionProgress.from_row(row) for row in rows]
        return {p.session_id: p for p in progress}

    async def save_session_progress(self, progress: SessionProgress) -> bool:
        """Write progress if the stored row is still at ``progress.version``.

        A record with version 0 is inserted only if no row exists yet. On
        success ``progress.version`` is advanced to the stored version.

        Returns:
            False if another writer got there first; re-read and merge again
        """
        state = [
            progress.watch_percentage,
            progress.watch_time_seconds,
            progress.video_completed,
            progress.resources_accessed,
            progress.quiz_passed,
            progress.quiz_attempt_count,
            progress.quiz_score,
            progress.is_completed,
            progress.is_unlocked,
            progress.started_at,
            progress.completed_at,
            progress.last_accessed_at,
        ]
        key = [progress.user_id, progress.course_id, progress.session_id]
        new_version = progress.version + 1

        if progress.version == 0:
            result = await self.session.aexecute(
                self._insert_session_progress,
                [*key, progress.enrollment_id, *state, new_version],
            )
        else:
            result = await self.session.aexecute(
                self._update_session_progress,
                [progress.enrollment_id, *state, new_version, *key, progress.version],
            )

        if not result.was_applied:
            logger.debug(
                "session_progress_write_conflict",
                session_id=str(progress.session_id),
                expected_version=progress.version,
            )
            return False
        progress.version = new_version
        return True

    async def touch_session_progress(self, progress: SessionProgress) -> None:
        """Update only ``last_accessed_at`` of a stored row."""
        await self.session.aexecute(
            self._touch_session_progress,
            [
                progress.last_accessed_at,
                progress.user_id,
                progress.course_id,
                progress.session_id,
            ],
        )
