"""Learner progression.

Provides:
- Enrollment and session progress persistence
- Session gating, watch tracking and completion rollup
- The completion pipeline linking them to certification
"""

from .aggregator import CompletionAggregator, EnrollmentRollup, compute_rollup
from .gate import SessionGateEvaluator, evaluate_gate
from .models import (
    PROGRESS_TABLES_CQL,
    Enrollment,
    EnrollmentStatus,
    SessionProgress,
)
from .pipeline import CompletionPipeline
from .repository import ProgressRepository
from .service import ProgressService
from .tracker import WatchProgressTracker


__all__ = [
    "PROGRESS_TABLES_CQL",
    "CompletionAggregator",
    "CompletionPipeline",
    "Enrollment",
    "EnrollmentRollup",
    "EnrollmentStatus",
    "ProgressRepository",
    "ProgressService",
    "SessionGateEvaluator",
    "SessionProgress",
    "WatchProgressTracker",
    "compute_rollup",
    "evaluate_gate",
]
