"""Quiz scoring engine.

Business logic for:
- Starting attempts (reserved id, seeded display order)
- Submitting attempts: access checks, attempt limit, grading and the
  progression side effects of the quiz scope
- Attempt history and review

Attempt numbers are serialized per (quiz, learner) by a lightweight
transaction on the attempt slot. A submission that loses the race re-reads
the count and tries the next number, so concurrent submissions can never
push the learner past the attempt limit.
"""

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

import structlog

from coursepath.catalog.models import Quiz, QuizScopeKind
from coursepath.core.context import bind_enrollment
from coursepath.core.errors import (
    AttemptConflictError,
    AttemptLimitExceededError,
    EnrollmentNotActiveError,
    NotFoundError,
    ValidationError,
)
from coursepath.progress.models import (
    Enrollment,
    SessionProgress,
    merge_max,
    merge_or,
)

from .grading import SubmittedAnswer, grade_attempt, presentation_order
from .models import AttemptStart, QuestionAnswer, QuizAttempt
from .schemas import (
    AttemptReviewResponse,
    OptionPresentation,
    QuestionPresentation,
    QuizAttemptListResponse,
    QuizAttemptResponse,
    QuizPresentationResponse,
    ReviewOption,
    ReviewQuestion,
)


if TYPE_CHECKING:
    from coursepath.catalog.repository import CatalogRepository
    from coursepath.catalog.resolver import ContentGraphResolver, CourseSequence
    from coursepath.progress.pipeline import CompletionPipeline
    from coursepath.progress.repository import ProgressRepository
    from coursepath.progress.tracker import SessionContext, WatchProgressTracker

    from .repository import QuizAttemptRepository

logger = structlog.get_logger(__name__)


class QuizService:
    """Service for quiz attempts and their progression effects."""

    def __init__(
        self,
        catalog: "CatalogRepository",
        resolver: "ContentGraphResolver",
        attempts: "QuizAttemptRepository",
        progress: "ProgressRepository",
        tracker: "WatchProgressTracker",
        pipeline: "CompletionPipeline",
        insert_retries: int = 3,
    ):
        self.catalog = catalog
        self.resolver = resolver
        self.attempts = attempts
        self.progress = progress
        self.tracker = tracker
        self.pipeline = pipeline
        self.insert_retries = insert_retries

    # ==========================================================================
    # Access
    # ==========================================================================

    async def _get_quiz(self, quiz_id: UUID) -> Quiz:
        quiz = await self.catalog.get_quiz(quiz_id)
        if quiz is None:
            raise NotFoundError(f"Quiz {quiz_id} not found", "quiz_not_found")
        return quiz

    async def _get_active_enrollment(self, user_id: UUID, quiz: Quiz) -> Enrollment:
        enrollment = await self.progress.get_enrollment_for_learner(
            user_id, quiz.course_id
        )
        if enrollment is None:
            raise NotFoundError(
                f"No enrollment in course {quiz.course_id}", "enrollment_not_found"
            )
        if not enrollment.is_active:
            raise EnrollmentNotActiveError(
                f"Enrollment {enrollment.id} is {enrollment.status}"
            )
        bind_enrollment(enrollment.id, enrollment.course_id)
        return enrollment

    async def _check_access(
        self, user_id: UUID, quiz: Quiz
    ) -> tuple[Enrollment, "CourseSequence", "SessionContext | None"]:
        """Enrollment must be active; a session quiz needs an unlocked session."""
        enrollment = await self._get_active_enrollment(user_id, quiz)
        sequence = await self.resolver.resolve(quiz.course_id)
        ctx = None
        if quiz.scope.is_session:
            ctx = await self.tracker.load_session_context(
                user_id, quiz.scope.id, enrollment, sequence
            )
        return enrollment, sequence, ctx

    @staticmethod
    def attempt_limit(quiz: Quiz, sequence: "CourseSequence") -> int:
        """Effective attempt cap; session quizzes also obey the session's cap."""
        if quiz.scope.is_session and quiz.scope.id in sequence:
            session = sequence.get(quiz.scope.id)
            return min(quiz.max_attempts, session.max_quiz_attempts)
        return quiz.max_attempts

    # ==========================================================================
    # Start
    # ==========================================================================

    async def start_attempt(
        self, user_id: UUID, quiz_id: UUID
    ) -> QuizPresentationResponse:
        """Reserve an attempt id and return the questions in display order.

        Raises:
            NotFoundError: Unknown quiz or no enrollment
            StateError: Inactive enrollment or locked session
            AttemptLimitExceededError: No attempts left
        """
        quiz = await self._get_quiz(quiz_id)
        _, sequence, _ = await self._check_access(user_id, quiz)

        limit = self.attempt_limit(quiz, sequence)
        used = await self.attempts.count_attempts(quiz.id, user_id)
        if used >= limit:
            raise AttemptLimitExceededError(
                f"Attempt limit of {limit} reached for quiz {quiz.id}"
            )

        start = AttemptStart(quiz_id=quiz.id, user_id=user_id, attempt_id=uuid4())
        await self.attempts.save_start(start)

        logger.info(
            "quiz_attempt_started",
            quiz_id=str(quiz.id),
            attempt_id=str(start.attempt_id),
            attempt_number=used + 1,
        )

        return QuizPresentationResponse(
            attempt_id=start.attempt_id,
            quiz_id=quiz.id,
            title=quiz.title,
            attempt_number=used + 1,
            max_attempts=limit,
            started_at=start.started_at,
            time_limit_seconds=quiz.time_limit_seconds,
            passing_score=quiz.passing_score,
            questions=[
                QuestionPresentation(
                    id=question.id,
                    prompt=question.prompt,
                    points=question.points,
                    multiple_answers=question.is_multi_correct,
                    options=[OptionPresentation(id=o.id, text=o.text) for o in options],
                )
                for question, options in presentation_order(quiz, start.attempt_id)
            ],
        )

    # ==========================================================================
    # Submit
    # ==========================================================================

    async def submit_attempt(
        self,
        user_id: UUID,
        quiz_id: UUID,
        answers: list[SubmittedAnswer],
        client_elapsed_seconds: int = 0,
        attempt_id: UUID | None = None,
    ) -> QuizAttempt:
        """Grade a submission and apply its progression side effects.

        When ``attempt_id`` names a started attempt, elapsed time is measured
        from the server-side start instead of trusting the client.

        Raises:
            ValidationError: Bad answers or negative elapsed time
            NotFoundError: Unknown quiz, enrollment or started attempt
            StateError: Inactive enrollment or locked session
            AttemptLimitExceededError: No attempts left
            AttemptConflictError: The started attempt was already submitted, or
                concurrent submissions kept colliding
        """
        if client_elapsed_seconds < 0:
            raise ValidationError(
                "time_spent_seconds must not be negative", "invalid_elapsed_time"
            )

        quiz = await self._get_quiz(quiz_id)
        grade = grade_attempt(quiz, answers)
        enrollment, sequence, ctx = await self._check_access(user_id, quiz)

        now = datetime.now(UTC)
        start = None
        if attempt_id is not None:
            start = await self.attempts.get_start(quiz.id, user_id, attempt_id)
            if start is None:
                if await self.attempts.attempt_exists(attempt_id):
                    raise AttemptConflictError(
                        f"Attempt {attempt_id} was already submitted"
                    )
                raise NotFoundError(
                    f"Attempt {attempt_id} was not started", "attempt_not_found"
                )
            if not await self.attempts.claim_start(start):
                raise AttemptConflictError(
                    f"Attempt {attempt_id} was already submitted"
                )
            elapsed = max(int((now - start.started_at).total_seconds()), 0)
            started_at = start.started_at
        else:
            attempt_id = uuid4()
            elapsed = client_elapsed_seconds
            started_at = now - timedelta(seconds=elapsed)

        timed_out = quiz.time_limit_seconds > 0 and elapsed > quiz.time_limit_seconds

        limit = self.attempt_limit(quiz, sequence)
        attempt = None
        for _ in range(self.insert_retries + 1):
            used = await self.attempts.count_attempts(quiz.id, user_id)
            if used >= limit:
                raise AttemptLimitExceededError(
                    f"Attempt limit of {limit} reached for quiz {quiz.id}"
                )
            attempt = QuizAttempt(
                id=attempt_id,
                quiz_id=quiz.id,
                user_id=user_id,
                attempt_number=used + 1,
                started_at=started_at,
                completed_at=now,
                score=grade.score,
                total_points=grade.total_points,
                points_earned=grade.points_earned,
                correct_answers=grade.correct_answers,
                total_questions=grade.total_questions,
                is_passed=grade.is_passed,
                time_spent_seconds=elapsed,
                timed_out=timed_out,
                answers=[
                    QuestionAnswer(
                        attempt_id=attempt_id,
                        question_id=a.question_id,
                        selected_option_ids=a.selected_option_ids,
                        is_correct=a.is_correct,
                        points_earned=a.points_earned,
                    )
                    for a in grade.answers
                ],
            )
            if await self.attempts.insert_attempt(attempt):
                break
            logger.warning(
                "quiz_attempt_slot_taken",
                quiz_id=str(quiz.id),
                attempt_number=attempt.attempt_number,
            )
        else:
            if start is not None:
                # Hand the reservation back so the learner can resubmit
                await self.attempts.save_start(start)
            raise AttemptConflictError(
                f"Could not record attempt for quiz {quiz.id}, try again"
            )

        logger.info(
            "quiz_attempt_graded",
            quiz_id=str(quiz.id),
            attempt_id=str(attempt.id),
            attempt_number=attempt.attempt_number,
            scope=quiz.scope.kind.value,
            score=attempt.score,
            passed=attempt.is_passed,
            timed_out=attempt.timed_out,
        )

        if quiz.scope.kind == QuizScopeKind.SESSION and ctx is not None:
            await self._apply_session_result(ctx, attempt)
        elif quiz.scope.kind == QuizScopeKind.COURSE:
            await self._apply_final_assessment(enrollment, sequence, attempt)

        return attempt

    async def _apply_session_result(
        self, ctx: "SessionContext", attempt: QuizAttempt
    ) -> None:
        passed = attempt.is_passed and attempt.score >= ctx.session.quiz_passing_score

        def apply(progress: SessionProgress) -> None:
            progress.quiz_attempt_count = merge_max(
                progress.quiz_attempt_count, attempt.attempt_number
            )
            progress.quiz_score = merge_max(progress.quiz_score, attempt.score)
            progress.quiz_passed = merge_or(progress.quiz_passed, passed)

        await self.tracker.commit_progress(ctx, apply)

    async def _apply_final_assessment(
        self,
        enrollment: Enrollment,
        sequence: "CourseSequence",
        attempt: QuizAttempt,
    ) -> None:
        course = sequence.course
        if not attempt.is_passed or attempt.score < course.final_assessment_passing_score:
            return

        best = merge_max(enrollment.final_assessment_score, attempt.score)
        if not enrollment.final_assessment_passed or best != enrollment.final_assessment_score:
            enrollment.final_assessment_passed = True
            enrollment.final_assessment_score = best
            await self.progress.save_final_assessment(enrollment)
            logger.info(
                "final_assessment_passed",
                enrollment_id=str(enrollment.id),
                course_id=str(course.id),
                score=best,
            )

        await self.pipeline.aggregate_and_certify(enrollment, sequence)

    # ==========================================================================
    # History
    # ==========================================================================

    async def list_attempts(
        self, user_id: UUID, quiz_id: UUID
    ) -> QuizAttemptListResponse:
        """Attempt history with remaining attempts."""
        quiz = await self._get_quiz(quiz_id)
        sequence = await self.resolver.resolve(quiz.course_id)
        attempts = await self.attempts.list_attempts(quiz.id, user_id)
        limit = self.attempt_limit(quiz, sequence)

        return QuizAttemptListResponse(
            items=[QuizAttemptResponse.from_entity(a) for a in attempts],
            total=len(attempts),
            max_attempts=limit,
            attempts_remaining=max(limit - len(attempts), 0),
            best_score=max((a.score for a in attempts), default=None),
            passed=any(a.is_passed for a in attempts),
        )

    async def get_attempt_review(
        self, user_id: UUID, attempt_id: UUID
    ) -> AttemptReviewResponse:
        """Replay a graded attempt in the order the learner saw it.

        Correct options are revealed only when the quiz allows it.
        """
        attempt = await self.attempts.get_attempt(attempt_id)
        if attempt is None or attempt.user_id != user_id:
            raise NotFoundError(
                f"Attempt {attempt_id} not found", "attempt_not_found"
            )
        quiz = await self._get_quiz(attempt.quiz_id)
        answers = {a.question_id: a for a in attempt.answers}
        reveal = quiz.show_correct_answers

        questions = []
        for question, options in presentation_order(quiz, attempt.id):
            answer = answers.get(question.id)
            questions.append(
                ReviewQuestion(
                    question_id=question.id,
                    prompt=question.prompt,
                    points=question.points,
                    options=[
                        ReviewOption(
                            id=o.id,
                            text=o.text,
                            is_correct=o.is_correct if reveal else None,
                        )
                        for o in options
                    ],
                    selected_option_ids=(
                        sorted(answer.selected_option_ids, key=str) if answer else []
                    ),
                    is_correct=bool(answer and answer.is_correct),
                    points_earned=answer.points_earned if answer else 0,
                )
            )

        return AttemptReviewResponse(
            attempt=QuizAttemptResponse.from_entity(attempt),
            show_correct_answers=reveal,
            questions=questions,
        )
