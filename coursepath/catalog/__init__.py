"""Course catalog (read-only) and content graph resolution.

Provides:
- Course, module, session and quiz definitions owned by course management
- Deterministic course-order resolution of sessions
"""

from .models import (
    CATALOG_TABLES_CQL,
    Course,
    Module,
    Question,
    QuestionOption,
    Quiz,
    QuizScope,
    QuizScopeKind,
    Session,
)
from .resolver import ContentGraphResolver, CourseSequence, order_sessions


__all__ = [
    "CATALOG_TABLES_CQL",
    "ContentGraphResolver",
    "Course",
    "CourseSequence",
    "Module",
    "Question",
    "QuestionOption",
    "Quiz",
    "QuizScope",
    "QuizScopeKind",
    "Session",
    "order_sessions",
]
