"""Read-only access to course catalog tables."""

from collections import defaultdict
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from .models import Course, Module, Question, QuestionOption, Quiz, Session


if TYPE_CHECKING:
    from cassandra.cluster import Session as CassandraSession

logger = structlog.get_logger(__name__)


class CatalogRepository:
    """Loads course structure and quiz definitions."""

    def __init__(self, session: "CassandraSession", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_course = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.courses WHERE id = ?
        """)

        self._get_course_modules = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.modules_by_course WHERE course_id = ?
        """)

        self._get_course_sessions = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.sessions_by_course WHERE course_id = ?
        """)

        self._get_session_lookup = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.sessions WHERE id = ?
        """)

        self._get_quiz = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.quizzes WHERE id = ?
        """)

        self._get_quiz_questions = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.quiz_questions WHERE quiz_id = ?
        """)

        self._get_quiz_options = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.quiz_question_options WHERE quiz_id = ?
        """)

    async def get_course(self, course_id: UUID) -> Course | None:
        """Get course flags by id."""
        result = await self.session.aexecute(self._get_course, [course_id])
        row = result.one()
        return Course.from_row(row) if row else None

    async def get_modules(self, course_id: UUID) -> list[Module]:
        """Get all modules of a course (unordered)."""
        rows = await self.session.aexecute(self._get_course_modules, [course_id])
        return [Module.from_row(row) for row in rows]

    async def get_sessions(self, course_id: UUID) -> list[Session]:
        """Get all sessions of a course (unordered)."""
        rows = await self.session.aexecute(self._get_course_sessions, [course_id])
        return [Session.from_row(row) for row in rows]

    async def get_session_course_id(self, session_id: UUID) -> UUID | None:
        """Get the id of the course owning a session."""
        result = await self.session.aexecute(self._get_session_lookup, [session_id])
        row = result.one()
        return row.course_id if row else None

    async def get_quiz(self, quiz_id: UUID) -> Quiz | None:
        """Get a quiz with its questions and options."""
        result = await self.session.aexecute(self._get_quiz, [quiz_id])
        row = result.one()
        if not row:
            return None

        option_rows = await self.session.aexecute(self._get_quiz_options, [quiz_id])
        options: dict[UUID, list[QuestionOption]] = defaultdict(list)
        for option_row in option_rows:
            options[option_row.question_id].append(QuestionOption.from_row(option_row))

        question_rows = await self.session.aexecute(
            self._get_quiz_questions, [quiz_id]
        )
        questions = [
            Question.from_row(q, options.get(q.question_id, [])) for q in question_rows
        ]
        return Quiz.from_row(row, questions)
