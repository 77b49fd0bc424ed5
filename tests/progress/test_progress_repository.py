"""Tests for Cassandra-backed repositories with a mocked session."""

from decimal import Decimal
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest
from cassandra.cluster import Session

from coursepath.certificates.models import Certificate
from coursepath.certificates.repository import CertificateRepository
from coursepath.progress.models import SessionProgress
from coursepath.progress.repository import ProgressRepository
from coursepath.quizzes.models import AttemptStart, QuestionAnswer, QuizAttempt
from coursepath.quizzes.repository import (
    DEFAULT_START_TTL_SECONDS,
    QuizAttemptRepository,
)


@pytest.fixture
def mock_session():
    """Mock Cassandra session."""
    session = Mock(spec=Session)
    # Mock prepare to avoid actual statement preparation
    session.prepare = Mock(return_value=Mock())
    # Make aexecute awaitable (cassandra-asyncio-driver)
    session.aexecute = AsyncMock(return_value=Mock())
    return session


def _result(row=None, was_applied=True):
    result = Mock()
    result.one = Mock(return_value=row)
    result.was_applied = was_applied
    return result


class TestProgressRepository:
    """Tests for enrollment and session progress persistence."""

    @pytest.mark.asyncio
    async def test_get_enrollment_missing(self, mock_session) -> None:
        mock_session.aexecute = AsyncMock(return_value=_result(None))
        repository = ProgressRepository(mock_session, "test_keyspace")

        assert await repository.get_enrollment(uuid4()) is None

    @pytest.mark.asyncio
    async def test_enrollment_for_learner_follows_lookup(self, mock_session) -> None:
        enrollment_id, user_id, course_id = uuid4(), uuid4(), uuid4()
        lookup = Mock(enrollment_id=enrollment_id)
        row = Mock(
            id=enrollment_id,
            user_id=user_id,
            course_id=course_id,
            status="approved",
            enrolled_at=None,
            progress_percentage=Decimal("50.00"),
            sessions_completed=2,
            sessions_total=4,
            final_assessment_passed=None,
            final_assessment_score=None,
            completed_at=None,
            last_accessed_at=None,
        )
        mock_session.aexecute = AsyncMock(side_effect=[_result(lookup), _result(row)])
        repository = ProgressRepository(mock_session, "test_keyspace")

        enrollment = await repository.get_enrollment_for_learner(user_id, course_id)

        assert enrollment.id == enrollment_id
        assert enrollment.is_active is True
        assert enrollment.final_assessment_passed is False
        assert mock_session.aexecute.await_count == 2

    @pytest.mark.asyncio
    async def test_save_session_progress_inserts_new_row(self, mock_session) -> None:
        mock_session.aexecute = AsyncMock(return_value=_result(was_applied=True))
        repository = ProgressRepository(mock_session, "test_keyspace")
        progress = SessionProgress.new(uuid4(), uuid4(), uuid4(), uuid4())
        progress.watch_percentage = Decimal("42.5")

        assert await repository.save_session_progress(progress) is True

        params = mock_session.aexecute.call_args[0][1]
        assert len(params) == 17
        assert params[:3] == [progress.user_id, progress.course_id, progress.session_id]
        assert Decimal("42.5") in params
        assert params[-1] == 1
        assert progress.version == 1

    @pytest.mark.asyncio
    async def test_save_session_progress_checks_stored_version(
        self, mock_session
    ) -> None:
        mock_session.aexecute = AsyncMock(return_value=_result(was_applied=True))
        repository = ProgressRepository(mock_session, "test_keyspace")
        progress = SessionProgress.new(uuid4(), uuid4(), uuid4(), uuid4())
        progress.version = 3

        assert await repository.save_session_progress(progress) is True

        params = mock_session.aexecute.call_args[0][1]
        assert params[-4:] == [
            progress.user_id,
            progress.course_id,
            progress.session_id,
            3,
        ]
        assert progress.version == 4

    @pytest.mark.asyncio
    async def test_save_session_progress_lost_race(self, mock_session) -> None:
        mock_session.aexecute = AsyncMock(return_value=_result(was_applied=False))
        repository = ProgressRepository(mock_session, "test_keyspace")
        progress = SessionProgress.new(uuid4(), uuid4(), uuid4(), uuid4())
        progress.version = 2

        assert await repository.save_session_progress(progress) is False
        assert progress.version == 2

    @pytest.mark.asyncio
    async def test_course_progress_keyed_by_session(self, mock_session) -> None:
        user_id, course_id = uuid4(), uuid4()
        rows = [
            Mock(
                user_id=user_id,
                course_id=course_id,
                session_id=uuid4(),
                enrollment_id=uuid4(),
                watch_percentage=Decimal(80),
                watch_time_seconds=100,
                video_completed=True,
                resources_accessed=False,
                quiz_passed=False,
                quiz_attempt_count=0,
                quiz_score=None,
                is_completed=True,
                is_unlocked=True,
                started_at=None,
                completed_at=None,
                last_accessed_at=None,
                version=1,
            )
            for _ in range(2)
        ]
        mock_session.aexecute = AsyncMock(return_value=rows)
        repository = ProgressRepository(mock_session, "test_keyspace")

        progress = await repository.get_course_progress(user_id, course_id)

        assert set(progress) == {r.session_id for r in rows}
        assert all(p.is_completed for p in progress.values())


class TestQuizAttemptRepository:
    """Tests for attempt persistence."""

    def _attempt(self) -> QuizAttempt:
        attempt_id = uuid4()
        return QuizAttempt(
            id=attempt_id,
            quiz_id=uuid4(),
            user_id=uuid4(),
            attempt_number=1,
            answers=[
                QuestionAnswer(attempt_id, uuid4(), {uuid4()}, True, 25),
                QuestionAnswer(attempt_id, uuid4(), {uuid4()}, False, 0),
            ],
        )

    @pytest.mark.asyncio
    async def test_insert_writes_lookup_and_answers(self, mock_session) -> None:
        mock_session.aexecute = AsyncMock(return_value=_result(was_applied=True))
        repository = QuizAttemptRepository(mock_session, "test_keyspace")

        assert await repository.insert_attempt(self._attempt()) is True
        # slot + lookup + one row per answer
        assert mock_session.aexecute.await_count == 4

    @pytest.mark.asyncio
    async def test_lost_slot_writes_nothing_else(self, mock_session) -> None:
        mock_session.aexecute = AsyncMock(return_value=_result(was_applied=False))
        repository = QuizAttemptRepository(mock_session, "test_keyspace")

        assert await repository.insert_attempt(self._attempt()) is False
        assert mock_session.aexecute.await_count == 1

    @pytest.mark.asyncio
    async def test_count_attempts(self, mock_session) -> None:
        mock_session.aexecute = AsyncMock(return_value=_result(Mock(attempts=2)))
        repository = QuizAttemptRepository(mock_session, "test_keyspace")

        assert await repository.count_attempts(uuid4(), uuid4()) == 2

    @pytest.mark.asyncio
    async def test_save_start_binds_ttl(self, mock_session) -> None:
        repository = QuizAttemptRepository(
            mock_session, "test_keyspace", start_ttl_seconds=86400
        )
        start = AttemptStart(quiz_id=uuid4(), user_id=uuid4(), attempt_id=uuid4())

        await repository.save_start(start)

        params = mock_session.aexecute.call_args[0][1]
        assert params[-1] == 86400

    def test_default_start_ttl_outlives_a_day(self, mock_session) -> None:
        repository = QuizAttemptRepository(mock_session, "test_keyspace")

        assert repository.start_ttl_seconds == DEFAULT_START_TTL_SECONDS
        assert DEFAULT_START_TTL_SECONDS > 24 * 60 * 60

    @pytest.mark.asyncio
    async def test_claim_start_reports_lwt_outcome(self, mock_session) -> None:
        repository = QuizAttemptRepository(mock_session, "test_keyspace")
        start = AttemptStart(quiz_id=uuid4(), user_id=uuid4(), attempt_id=uuid4())

        mock_session.aexecute = AsyncMock(return_value=_result(was_applied=True))
        assert await repository.claim_start(start) is True

        mock_session.aexecute = AsyncMock(return_value=_result(was_applied=False))
        assert await repository.claim_start(start) is False


class TestCertificateRepository:
    """Tests for certificate persistence."""

    @pytest.mark.asyncio
    async def test_claim_slot_reports_lwt_outcome(self, mock_session) -> None:
        certificate = Certificate(
            id=uuid4(),
            user_id=uuid4(),
            course_id=uuid4(),
            enrollment_id=uuid4(),
            certificate_number="CP-20260101-ABCDEF0123",
        )
        repository = CertificateRepository(mock_session, "test_keyspace")

        mock_session.aexecute = AsyncMock(return_value=_result(was_applied=True))
        assert await repository.claim_slot(certificate) is True

        mock_session.aexecute = AsyncMock(return_value=_result(was_applied=False))
        assert await repository.claim_slot(certificate) is False

    @pytest.mark.asyncio
    async def test_get_by_number_unknown(self, mock_session) -> None:
        mock_session.aexecute = AsyncMock(return_value=_result(None))
        repository = CertificateRepository(mock_session, "test_keyspace")

        assert await repository.get_by_number("CP-20260101-0000000000") is None
