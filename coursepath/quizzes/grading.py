"""Quiz grading and presentation order.

Grading is all-or-nothing per question: the selected option set must equal
the question's correct option set exactly. This holds for multi-correct
questions too, where a strict subset earns nothing. Unanswered questions
score zero. Presentation order is a seeded shuffle that never affects
scoring, which is keyed by question and option ids.
"""

import hashlib
import random
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from coursepath.catalog.models import Question, QuestionOption, Quiz
from coursepath.core.errors import ValidationError
from coursepath.utils.numbers import round_half_up


@dataclass(frozen=True)
class SubmittedAnswer:
    question_id: UUID
    selected_option_ids: frozenset[UUID] = field(default_factory=frozenset)


@dataclass(frozen=True)
class GradedAnswer:
    question_id: UUID
    selected_option_ids: frozenset[UUID]
    is_correct: bool
    points_earned: int


@dataclass(frozen=True)
class GradeResult:
    score: int
    points_earned: int
    total_points: int
    correct_answers: int
    total_questions: int
    is_passed: bool
    answers: list[GradedAnswer]


def _index_answers(
    quiz: Quiz, answers: list[SubmittedAnswer]
) -> dict[UUID, frozenset[UUID]]:
    """Validate submitted answers against the quiz and index them by question."""
    questions = {q.id: q for q in quiz.questions}
    indexed: dict[UUID, frozenset[UUID]] = {}

    for answer in answers:
        question = questions.get(answer.question_id)
        if question is None:
            raise ValidationError(
                f"Question {answer.question_id} is not part of quiz {quiz.id}",
                "unknown_question",
            )
        if answer.question_id in indexed:
            raise ValidationError(
                f"Question {answer.question_id} answered more than once",
                "duplicate_answer",
            )
        option_ids = {o.id for o in question.options}
        unknown = set(answer.selected_option_ids) - option_ids
        if unknown:
            raise ValidationError(
                f"Options {sorted(map(str, unknown))} do not belong to question "
                f"{question.id}",
                "unknown_option",
            )
        indexed[answer.question_id] = frozenset(answer.selected_option_ids)

    return indexed


def grade_question(question: Question, selected: frozenset[UUID]) -> GradedAnswer:
    """Full points on an exact match with the correct set, otherwise zero."""
    is_correct = bool(selected) and selected == question.correct_option_ids
    return GradedAnswer(
        question_id=question.id,
        selected_option_ids=selected,
        is_correct=is_correct,
        points_earned=question.points if is_correct else 0,
    )


def grade_attempt(quiz: Quiz, answers: list[SubmittedAnswer]) -> GradeResult:
    """Grade a submission against ``quiz``.

    Raises:
        ValidationError: Unknown question or option, or a question answered twice
    """
    indexed = _index_answers(quiz, answers)

    graded = [
        grade_question(q, indexed.get(q.id, frozenset())) for q in quiz.questions
    ]
    total_points = quiz.total_points
    points_earned = sum(a.points_earned for a in graded)
    score = (
        round_half_up(Decimal(100 * points_earned) / total_points) if total_points else 0
    )

    return GradeResult(
        score=score,
        points_earned=points_earned,
        total_points=total_points,
        correct_answers=sum(1 for a in graded if a.is_correct),
        total_questions=len(quiz.questions),
        is_passed=score >= quiz.passing_score,
        answers=graded,
    )


def _rng_for(attempt_id: UUID) -> random.Random:
    digest = hashlib.sha256(attempt_id.bytes).digest()
    return random.Random(int.from_bytes(digest[:8], "big"))


def presentation_order(
    quiz: Quiz, attempt_id: UUID
) -> list[tuple[Question, list[QuestionOption]]]:
    """Display order of questions and options for one attempt.

    Reproducible for the same attempt id, so a review shows exactly what the
    learner saw.
    """
    rng = _rng_for(attempt_id)

    questions = list(quiz.questions)
    if quiz.shuffle_questions:
        rng.shuffle(questions)

    ordered = []
    for question in questions:
        options = list(question.options)
        if quiz.shuffle_options:
            rng.shuffle(options)
        ordered.append((question, options))
    return ordered
