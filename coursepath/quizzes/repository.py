"""Persistence for quiz attempts."""

from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from .models import AttemptStart, QuestionAnswer, QuizAttempt


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)

# Abandoned reservations expire; well past any practical quiz time limit
DEFAULT_START_TTL_SECONDS = 7 * 24 * 60 * 60


class QuizAttemptRepository:
    """Reads and writes quiz attempts, answers and attempt reservations."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        start_ttl_seconds: int = DEFAULT_START_TTL_SECONDS,
    ):
        """Initialize with Cassandra session.

        Args:
            start_ttl_seconds: Lifetime of an unsubmitted attempt reservation
        """
        self.session = session
        self.keyspace = keyspace
        self.start_ttl_seconds = start_ttl_seconds
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        # Attempts
        self._count_attempts = self.session.prepare(f"""
            SELECT COUNT(*) AS attempts FROM {self.keyspace}.quiz_attempts
            WHERE quiz_id = ? AND user_id = ?
        """)

        self._list_attempts = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.quiz_attempts
            WHERE quiz_id = ? AND user_id = ?
        """)

        self._get_attempt = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.quiz_attempts
            WHERE quiz_id = ? AND user_id = ? AND attempt_number = ?
        """)

        # Lightweight transaction: the attempt number slot is claimed once
        self._insert_attempt = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.quiz_attempts
            (quiz_id, user_id, attempt_number, id, started_at, completed_at,
             score, total_points, points_earned, correct_answers, total_questions,
             is_passed, time_spent_seconds, timed_out)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._insert_attempt_lookup = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.quiz_attempts_by_id
            (id, quiz_id, user_id, attempt_number)
            VALUES (?, ?, ?, ?)
        """)

        self._get_attempt_lookup = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.quiz_attempts_by_id WHERE id = ?
        """)

        # Answers
        self._insert_answer = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.quiz_attempt_answers
            (attempt_id, question_id, selected_option_ids, is_correct, points_earned)
            VALUES (?, ?, ?, ?, ?)
        """)

        self._get_answers = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.quiz_attempt_answers WHERE attempt_id = ?
        """)

        # Reservations
        self._insert_start = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.quiz_attempt_starts
            (quiz_id, user_id, attempt_id, started_at)
            VALUES (?, ?, ?, ?)
            USING TTL ?
        """)

        self._get_start = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.quiz_attempt_starts
            WHERE quiz_id = ? AND user_id = ? AND attempt_id = ?
        """)

        # Lightweight transaction: only one submission consumes a reservation
        self._claim_start = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.quiz_attempt_starts
            WHERE quiz_id = ? AND user_id = ? AND attempt_id = ?
            IF EXISTS
        """)

    # ==========================================================================
    # Attempts
    # ==========================================================================

    async def count_attempts(self, quiz_id: UUID, user_id: UUID) -> int:
        """Number of graded attempts of a learner on a quiz."""
        result = await self.session.aexecute(self._count_attempts, [quiz_id, user_id])
        row = result.one()
        return row.attempts if row else 0

    async def list_attempts(self, quiz_id: UUID, user_id: UUID) -> list[QuizAttempt]:
        """All attempts of a learner on a quiz, by attempt number."""
        rows = await self.session.aexecute(self._list_attempts, [quiz_id, user_id])
        return [QuizAttempt.from_row(row) for row in rows]

    async def insert_attempt(self, attempt: QuizAttempt) -> bool:
        """Claim the attempt number slot and store the attempt.

        Returns:
            False if another submission already holds that attempt number
        """
        result = await self.session.aexecute(
            self._insert_attempt,
            [
                attempt.quiz_id,
                attempt.user_id,
                attempt.attempt_number,
                attempt.id,
                attempt.started_at,
                attempt.completed_at,
                attempt.score,
                attempt.total_points,
                attempt.points_earned,
                attempt.correct_answers,
                attempt.total_questions,
                attempt.is_passed,
                attempt.time_spent_seconds,
                attempt.timed_out,
            ],
        )
        if not result.was_applied:
            return False

        await self.session.aexecute(
            self._insert_attempt_lookup,
            [attempt.id, attempt.quiz_id, attempt.user_id, attempt.attempt_number],
        )
        for answer in attempt.answers:
            await self.session.aexecute(
                self._insert_answer,
                [
                    answer.attempt_id,
                    answer.question_id,
                    set(answer.selected_option_ids),
                    answer.is_correct,
                    answer.points_earned,
                ],
            )
        return True

    async def get_attempt(self, attempt_id: UUID) -> QuizAttempt | None:
        """Get an attempt with its answers."""
        result = await self.session.aexecute(self._get_attempt_lookup, [attempt_id])
        lookup = result.one()
        if not lookup:
            return None

        result = await self.session.aexecute(
            self._get_attempt,
            [lookup.quiz_id, lookup.user_id, lookup.attempt_number],
        )
        row = result.one()
        if not row:
            return None

        answer_rows = await self.session.aexecute(self._get_answers, [attempt_id])
        answers = [QuestionAnswer.from_row(a) for a in answer_rows]
        return QuizAttempt.from_row(row, answers)

    async def attempt_exists(self, attempt_id: UUID) -> bool:
        result = await self.session.aexecute(self._get_attempt_lookup, [attempt_id])
        return result.one() is not None

    # ==========================================================================
    # Reservations
    # ==========================================================================

    async def save_start(self, start: AttemptStart) -> None:
        """Record a started (not yet submitted) attempt."""
        await self.session.aexecute(
            self._insert_start,
            [
                start.quiz_id,
                start.user_id,
                start.attempt_id,
                start.started_at,
                self.start_ttl_seconds,
            ],
        )

    async def get_start(
        self, quiz_id: UUID, user_id: UUID, attempt_id: UUID
    ) -> AttemptStart | None:
        result = await self.session.aexecute(
            self._get_start, [quiz_id, user_id, attempt_id]
        )
        row = result.one()
        return AttemptStart.from_row(row) if row else None

    async def claim_start(self, start: AttemptStart) -> bool:
        """Consume a reservation so it backs exactly one submission.

        Returns:
            False if another submission already consumed it
        """
        result = await self.session.aexecute(
            self._claim_start, [start.quiz_id, start.user_id, start.attempt_id]
        )
        return result.was_applied
