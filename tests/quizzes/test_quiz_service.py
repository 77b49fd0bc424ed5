"""Tests for quiz attempts and their progression effects."""

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest
from fakes import add_course, add_enrollment, add_quiz

from coursepath.catalog.models import QuizScopeKind
from coursepath.core.errors import (
    AttemptConflictError,
    AttemptLimitExceededError,
    ConflictError,
    NotFoundError,
    SessionLockedError,
    ValidationError,
)
from coursepath.quizzes.grading import SubmittedAnswer
from coursepath.quizzes.models import QuizAttempt


def _answers(quiz, correct: int) -> list[SubmittedAnswer]:
    """Answer the first ``correct`` questions right and the rest wrong."""
    return [
        SubmittedAnswer(
            question_id=q.id,
            selected_option_ids=frozenset({q.options[0 if i < correct else 3].id}),
        )
        for i, q in enumerate(quiz.questions)
    ]


@pytest.fixture
def session_quiz_setup(catalog, progress_repo, learner_id):
    """Course whose sessions require a passed quiz, with a quiz on session 1."""
    course, sessions = add_course(
        catalog, quiz_completion_required=True, quiz_passing_score=70
    )
    enrollment = add_enrollment(progress_repo, learner_id, course.id)
    quiz = add_quiz(
        catalog, course.id, QuizScopeKind.SESSION, sessions[0].id, passing_score=70
    )
    return course, sessions, enrollment, quiz


class TestSubmitSessionQuiz:
    """Tests for session-scoped quizzes."""

    @pytest.mark.asyncio
    async def test_passing_quiz_completes_watched_session(
        self, engine, session_quiz_setup, progress_repo, learner_id
    ) -> None:
        course, sessions, enrollment, quiz = session_quiz_setup
        await engine.progress_tracker.record_watch(
            learner_id, sessions[0].id, enrollment.id, 100, 300
        )
        assert not progress_repo.stored(learner_id, course.id, sessions[0].id).is_completed

        attempt = await engine.quiz_service.submit_attempt(
            learner_id, quiz.id, _answers(quiz, 3)
        )

        assert attempt.score == 75
        assert attempt.is_passed is True
        assert attempt.attempt_number == 1
        stored = progress_repo.stored(learner_id, course.id, sessions[0].id)
        assert stored.quiz_passed is True
        assert stored.quiz_score == 75
        assert stored.quiz_attempt_count == 1
        assert stored.is_completed is True
        assert progress_repo.stored(learner_id, course.id, sessions[1].id).is_unlocked

    @pytest.mark.asyncio
    async def test_best_score_and_pass_are_kept(
        self, engine, session_quiz_setup, progress_repo, learner_id
    ) -> None:
        course, sessions, _, quiz = session_quiz_setup

        await engine.quiz_service.submit_attempt(learner_id, quiz.id, _answers(quiz, 4))
        failed = await engine.quiz_service.submit_attempt(
            learner_id, quiz.id, _answers(quiz, 1)
        )

        assert failed.is_passed is False
        stored = progress_repo.stored(learner_id, course.id, sessions[0].id)
        assert stored.quiz_score == 100
        assert stored.quiz_passed is True
        assert stored.quiz_attempt_count == 2

    @pytest.mark.asyncio
    async def test_session_threshold_above_quiz_threshold(
        self, engine, catalog, progress_repo, learner_id
    ) -> None:
        """A quiz pass below the session's own threshold does not count."""
        course, sessions = add_course(
            catalog, quiz_completion_required=True, quiz_passing_score=80
        )
        add_enrollment(progress_repo, learner_id, course.id)
        quiz = add_quiz(
            catalog, course.id, QuizScopeKind.SESSION, sessions[0].id, passing_score=50
        )

        attempt = await engine.quiz_service.submit_attempt(
            learner_id, quiz.id, _answers(quiz, 3)
        )

        assert attempt.is_passed is True
        assert progress_repo.stored(learner_id, course.id, sessions[0].id).quiz_passed is False

    @pytest.mark.asyncio
    async def test_quiz_on_locked_session_rejected(
        self, engine, session_quiz_setup, catalog, attempts_repo, learner_id
    ) -> None:
        course, sessions, _, _ = session_quiz_setup
        locked_quiz = add_quiz(catalog, course.id, QuizScopeKind.SESSION, sessions[1].id)

        with pytest.raises(SessionLockedError):
            await engine.quiz_service.submit_attempt(
                learner_id, locked_quiz.id, _answers(locked_quiz, 4)
            )

        assert attempts_repo.attempts == {}

    @pytest.mark.asyncio
    async def test_invalid_answers_rejected_before_any_write(
        self, engine, session_quiz_setup, attempts_repo, learner_id
    ) -> None:
        _, _, _, quiz = session_quiz_setup

        with pytest.raises(ValidationError):
            await engine.quiz_service.submit_attempt(
                learner_id, quiz.id, [SubmittedAnswer(uuid4(), frozenset())]
            )

        assert attempts_repo.attempts == {}

    @pytest.mark.asyncio
    async def test_unknown_quiz(self, engine, learner_id) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            await engine.quiz_service.submit_attempt(learner_id, uuid4(), [])

        assert exc_info.value.code == "quiz_not_found"


class TestAttemptLimit:
    """Tests for attempt caps and concurrent submissions."""

    @pytest.mark.asyncio
    async def test_fourth_attempt_rejected(
        self, engine, session_quiz_setup, attempts_repo, learner_id
    ) -> None:
        _, _, _, quiz = session_quiz_setup
        service = engine.quiz_service

        for _ in range(3):
            await service.submit_attempt(learner_id, quiz.id, _answers(quiz, 1))

        with pytest.raises(AttemptLimitExceededError) as exc_info:
            await service.submit_attempt(learner_id, quiz.id, _answers(quiz, 4))

        assert isinstance(exc_info.value, ConflictError)
        assert len(attempts_repo.attempts) == 3

    @pytest.mark.asyncio
    async def test_session_cap_tightens_quiz_cap(
        self, engine, catalog, progress_repo, learner_id
    ) -> None:
        course, sessions = add_course(catalog, max_quiz_attempts=1)
        add_enrollment(progress_repo, learner_id, course.id)
        quiz = add_quiz(
            catalog, course.id, QuizScopeKind.SESSION, sessions[0].id, max_attempts=5
        )

        await engine.quiz_service.submit_attempt(learner_id, quiz.id, _answers(quiz, 1))

        with pytest.raises(AttemptLimitExceededError):
            await engine.quiz_service.submit_attempt(
                learner_id, quiz.id, _answers(quiz, 1)
            )

    @pytest.mark.asyncio
    async def test_lost_slot_retries_next_number(
        self, engine, session_quiz_setup, attempts_repo, learner_id
    ) -> None:
        _, _, _, quiz = session_quiz_setup
        attempts_repo.concurrent_winners = 1

        attempt = await engine.quiz_service.submit_attempt(
            learner_id, quiz.id, _answers(quiz, 4)
        )

        assert attempt.attempt_number == 2
        assert len(attempts_repo.attempts) == 2

    @pytest.mark.asyncio
    async def test_concurrent_winners_cannot_exceed_limit(
        self, engine, session_quiz_setup, attempts_repo, learner_id
    ) -> None:
        _, _, _, quiz = session_quiz_setup
        attempts_repo.concurrent_winners = 3

        with pytest.raises(AttemptLimitExceededError):
            await engine.quiz_service.submit_attempt(
                learner_id, quiz.id, _answers(quiz, 4)
            )

        assert len(attempts_repo.attempts) == 3

    @pytest.mark.asyncio
    async def test_persistent_collisions_give_up(
        self, engine, catalog, progress_repo, attempts_repo, learner_id
    ) -> None:
        course, sessions = add_course(catalog, max_quiz_attempts=20)
        add_enrollment(progress_repo, learner_id, course.id)
        quiz = add_quiz(
            catalog, course.id, QuizScopeKind.SESSION, sessions[0].id, max_attempts=20
        )
        attempts_repo.concurrent_winners = 10

        with pytest.raises(AttemptConflictError):
            await engine.quiz_service.submit_attempt(
                learner_id, quiz.id, _answers(quiz, 4)
            )


class TestStartedAttempts:
    """Tests for server-timed attempts."""

    @pytest.mark.asyncio
    async def test_start_then_submit(
        self, engine, session_quiz_setup, attempts_repo, learner_id
    ) -> None:
        _, _, _, quiz = session_quiz_setup

        presentation = await engine.quiz_service.start_attempt(learner_id, quiz.id)
        attempt = await engine.quiz_service.submit_attempt(
            learner_id,
            quiz.id,
            _answers(quiz, 4),
            client_elapsed_seconds=9999,
            attempt_id=presentation.attempt_id,
        )

        assert presentation.attempt_number == 1
        assert len(presentation.questions) == 4
        assert attempt.id == presentation.attempt_id
        assert attempt.time_spent_seconds < 60
        assert attempts_repo.starts == {}

    @pytest.mark.asyncio
    async def test_resubmitting_started_attempt_conflicts(
        self, engine, session_quiz_setup, learner_id
    ) -> None:
        _, _, _, quiz = session_quiz_setup
        service = engine.quiz_service
        presentation = await service.start_attempt(learner_id, quiz.id)
        await service.submit_attempt(
            learner_id, quiz.id, _answers(quiz, 4), attempt_id=presentation.attempt_id
        )

        with pytest.raises(AttemptConflictError):
            await service.submit_attempt(
                learner_id,
                quiz.id,
                _answers(quiz, 4),
                attempt_id=presentation.attempt_id,
            )

    @pytest.mark.asyncio
    async def test_simultaneous_submissions_of_one_start(
        self, engine, session_quiz_setup, attempts_repo, learner_id
    ) -> None:
        _, _, _, quiz = session_quiz_setup
        service = engine.quiz_service
        presentation = await service.start_attempt(learner_id, quiz.id)
        attempts_repo.interleave_reads = True

        results = await asyncio.gather(
            service.submit_attempt(
                learner_id, quiz.id, _answers(quiz, 4), attempt_id=presentation.attempt_id
            ),
            service.submit_attempt(
                learner_id, quiz.id, _answers(quiz, 4), attempt_id=presentation.attempt_id
            ),
            return_exceptions=True,
        )

        graded = [r for r in results if isinstance(r, QuizAttempt)]
        conflicts = [r for r in results if isinstance(r, AttemptConflictError)]
        assert len(graded) == 1
        assert len(conflicts) == 1
        assert graded[0].id == presentation.attempt_id
        assert await attempts_repo.count_attempts(quiz.id, learner_id) == 1

    @pytest.mark.asyncio
    async def test_start_handed_back_when_insert_keeps_colliding(
        self, engine, catalog, progress_repo, attempts_repo, learner_id
    ) -> None:
        course, sessions = add_course(catalog, max_quiz_attempts=20)
        add_enrollment(progress_repo, learner_id, course.id)
        quiz = add_quiz(
            catalog, course.id, QuizScopeKind.SESSION, sessions[0].id, max_attempts=20
        )
        service = engine.quiz_service
        presentation = await service.start_attempt(learner_id, quiz.id)
        attempts_repo.concurrent_winners = 10

        with pytest.raises(AttemptConflictError):
            await service.submit_attempt(
                learner_id, quiz.id, _answers(quiz, 4), attempt_id=presentation.attempt_id
            )

        key = (quiz.id, learner_id, presentation.attempt_id)
        assert key in attempts_repo.starts

    @pytest.mark.asyncio
    async def test_unknown_attempt_id(self, engine, session_quiz_setup, learner_id) -> None:
        _, _, _, quiz = session_quiz_setup

        with pytest.raises(NotFoundError) as exc_info:
            await engine.quiz_service.submit_attempt(
                learner_id, quiz.id, _answers(quiz, 4), attempt_id=uuid4()
            )

        assert exc_info.value.code == "attempt_not_found"

    @pytest.mark.asyncio
    async def test_late_submission_is_graded_and_flagged(
        self, engine, catalog, progress_repo, attempts_repo, learner_id
    ) -> None:
        course, sessions = add_course(catalog)
        add_enrollment(progress_repo, learner_id, course.id)
        quiz = add_quiz(
            catalog,
            course.id,
            QuizScopeKind.SESSION,
            sessions[0].id,
            time_limit_seconds=60,
        )
        presentation = await engine.quiz_service.start_attempt(learner_id, quiz.id)
        key = (quiz.id, learner_id, presentation.attempt_id)
        attempts_repo.starts[key].started_at -= timedelta(seconds=120)

        attempt = await engine.quiz_service.submit_attempt(
            learner_id, quiz.id, _answers(quiz, 4), attempt_id=presentation.attempt_id
        )

        assert attempt.timed_out is True
        assert attempt.score == 100
        assert attempt.time_spent_seconds >= 120

    @pytest.mark.asyncio
    async def test_start_respects_limit(
        self, engine, session_quiz_setup, learner_id
    ) -> None:
        _, _, _, quiz = session_quiz_setup
        for _ in range(3):
            await engine.quiz_service.submit_attempt(
                learner_id, quiz.id, _answers(quiz, 0)
            )

        with pytest.raises(AttemptLimitExceededError):
            await engine.quiz_service.start_attempt(learner_id, quiz.id)

    @pytest.mark.asyncio
    async def test_negative_elapsed_rejected(
        self, engine, session_quiz_setup, learner_id
    ) -> None:
        _, _, _, quiz = session_quiz_setup

        with pytest.raises(ValidationError):
            await engine.quiz_service.submit_attempt(
                learner_id, quiz.id, _answers(quiz, 4), client_elapsed_seconds=-1
            )


class TestOtherScopes:
    """Tests for module and course scoped quizzes."""

    @pytest.mark.asyncio
    async def test_module_quiz_has_no_progress_effect(
        self, engine, catalog, progress_repo, learner_id
    ) -> None:
        course, sessions = add_course(catalog)
        add_enrollment(progress_repo, learner_id, course.id)
        quiz = add_quiz(
            catalog, course.id, QuizScopeKind.MODULE, sessions[0].module_id
        )

        attempt = await engine.quiz_service.submit_attempt(
            learner_id, quiz.id, _answers(quiz, 4)
        )

        assert attempt.is_passed is True
        assert progress_repo.progress_writes == []
        assert progress_repo.rollup_writes == 0

    @pytest.mark.asyncio
    async def test_final_assessment_completes_course(
        self, engine, catalog, progress_repo, certificates_repo, learner_id
    ) -> None:
        course, sessions = add_course(
            catalog,
            modules=1,
            sessions_per_module=2,
            final_assessment_required=True,
            final_assessment_passing_score=70,
        )
        enrollment = add_enrollment(progress_repo, learner_id, course.id)
        quiz = add_quiz(
            catalog, course.id, QuizScopeKind.COURSE, course.id, passing_score=70
        )
        for session in sessions:
            await engine.progress_tracker.record_watch(
                learner_id, session.id, enrollment.id, 100, 600
            )
        assert progress_repo.enrollments[enrollment.id].completed_at is None

        await engine.quiz_service.submit_attempt(learner_id, quiz.id, _answers(quiz, 2))
        assert progress_repo.enrollments[enrollment.id].final_assessment_passed is False

        await engine.quiz_service.submit_attempt(learner_id, quiz.id, _answers(quiz, 4))

        stored = progress_repo.enrollments[enrollment.id]
        assert stored.final_assessment_passed is True
        assert stored.final_assessment_score == 100
        assert stored.completed_at is not None
        certificate = certificates_repo.certificates[(learner_id, course.id)]
        assert certificate.final_score == 100


class TestHistory:
    """Tests for attempt listing and review."""

    @pytest.mark.asyncio
    async def test_list_attempts(self, engine, session_quiz_setup, learner_id) -> None:
        _, _, _, quiz = session_quiz_setup
        await engine.quiz_service.submit_attempt(learner_id, quiz.id, _answers(quiz, 1))
        await engine.quiz_service.submit_attempt(learner_id, quiz.id, _answers(quiz, 3))

        history = await engine.quiz_service.list_attempts(learner_id, quiz.id)

        assert history.total == 2
        assert history.attempts_remaining == 1
        assert history.best_score == 75
        assert history.passed is True
        assert [a.attempt_number for a in history.items] == [1, 2]

    @pytest.mark.asyncio
    async def test_review_hides_correct_options_by_default(
        self, engine, session_quiz_setup, learner_id
    ) -> None:
        _, _, _, quiz = session_quiz_setup
        attempt = await engine.quiz_service.submit_attempt(
            learner_id, quiz.id, _answers(quiz, 2)
        )

        review = await engine.quiz_service.get_attempt_review(learner_id, attempt.id)

        assert review.show_correct_answers is False
        assert [q.is_correct for q in review.questions] == [True, True, False, False]
        assert all(o.is_correct is None for q in review.questions for o in q.options)

    @pytest.mark.asyncio
    async def test_review_reveals_when_allowed(
        self, engine, catalog, progress_repo, learner_id
    ) -> None:
        course, sessions = add_course(catalog)
        add_enrollment(progress_repo, learner_id, course.id)
        quiz = add_quiz(
            catalog,
            course.id,
            QuizScopeKind.SESSION,
            sessions[0].id,
            show_correct_answers=True,
        )
        attempt = await engine.quiz_service.submit_attempt(
            learner_id, quiz.id, _answers(quiz, 0)
        )

        review = await engine.quiz_service.get_attempt_review(learner_id, attempt.id)

        for question in review.questions:
            assert sum(1 for o in question.options if o.is_correct) == 1

    @pytest.mark.asyncio
    async def test_review_of_other_learner_not_found(
        self, engine, session_quiz_setup, learner_id
    ) -> None:
        _, _, _, quiz = session_quiz_setup
        attempt = await engine.quiz_service.submit_attempt(
            learner_id, quiz.id, _answers(quiz, 2)
        )

        with pytest.raises(NotFoundError):
            await engine.quiz_service.get_attempt_review(uuid4(), attempt.id)
