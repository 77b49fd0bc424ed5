"""Quiz scoring engine.

Provides:
- Attempt persistence with per-learner attempt number serialization
- All-or-nothing grading and seeded presentation order
- Session, module and course (final assessment) scoped side effects
"""

from .grading import GradeResult, SubmittedAnswer, grade_attempt, presentation_order
from .models import QUIZ_TABLES_CQL, QuestionAnswer, QuizAttempt
from .repository import QuizAttemptRepository
from .service import QuizService


__all__ = [
    "QUIZ_TABLES_CQL",
    "GradeResult",
    "QuestionAnswer",
    "QuizAttempt",
    "QuizAttemptRepository",
    "QuizService",
    "SubmittedAnswer",
    "grade_attempt",
    "presentation_order",
]
