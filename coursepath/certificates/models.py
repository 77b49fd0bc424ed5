"""Database models for certificates.

Cassandra table definitions for:
- Certificates by learner: one row per (learner, course); the slot is
  claimed with a lightweight transaction, so at most one certificate exists
- Certificates by number: unique public number, reserved the same way

A revoked certificate keeps its slot. Revocation is done by the
administration service and is only read here.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from coursepath.catalog.models import ensure_utc_aware


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

CERTIFICATES_BY_LEARNER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.certificates_by_learner (
    user_id UUID,
    course_id UUID,
    id UUID,
    enrollment_id UUID,
    certificate_number TEXT,
    issued_at TIMESTAMP,
    final_score INT,
    completed_at TIMESTAMP,
    is_valid BOOLEAN,
    invalidation_reason TEXT,
    PRIMARY KEY ((user_id), course_id)
)
"""

CERTIFICATES_BY_NUMBER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.certificates_by_number (
    certificate_number TEXT PRIMARY KEY,
    user_id UUID,
    course_id UUID
)
"""

CERTIFICATES_TABLES_CQL = [
    CERTIFICATES_BY_LEARNER_TABLE_CQL,
    CERTIFICATES_BY_NUMBER_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class Certificate:
    """Course completion certificate.

    Attributes:
        certificate_number: Public, unique number (PREFIX-YYYYMMDD-XXXXXXXXXX)
        final_score: Final assessment score, else mean passed quiz score
        completed_at: Course completion time of the enrollment
        is_valid: False once revoked
    """

    def __init__(
        self,
        id: UUID,
        user_id: UUID,
        course_id: UUID,
        enrollment_id: UUID,
        certificate_number: str,
        issued_at: datetime | None = None,
        final_score: int | None = None,
        completed_at: datetime | None = None,
        is_valid: bool = True,
        invalidation_reason: str | None = None,
    ):
        self.id = id
        self.user_id = user_id
        self.course_id = course_id
        self.enrollment_id = enrollment_id
        self.certificate_number = certificate_number
        self.issued_at = ensure_utc_aware(issued_at) or datetime.now(UTC)
        self.final_score = final_score
        self.completed_at = ensure_utc_aware(completed_at)
        self.is_valid = is_valid
        self.invalidation_reason = invalidation_reason

    @classmethod
    def from_row(cls, row: Any) -> "Certificate":
        """Create Certificate instance from a certificates_by_learner row."""
        return cls(
            id=row.id,
            user_id=row.user_id,
            course_id=row.course_id,
            enrollment_id=row.enrollment_id,
            certificate_number=row.certificate_number,
            issued_at=row.issued_at,
            final_score=row.final_score,
            completed_at=row.completed_at,
            is_valid=row.is_valid if row.is_valid is not None else True,
            invalidation_reason=row.invalidation_reason,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "course_id": self.course_id,
            "enrollment_id": self.enrollment_id,
            "certificate_number": self.certificate_number,
            "issued_at": self.issued_at,
            "final_score": self.final_score,
            "completed_at": self.completed_at,
            "is_valid": self.is_valid,
            "invalidation_reason": self.invalidation_reason,
        }

    def __repr__(self) -> str:
        return (
            f"<Certificate {self.certificate_number} user={self.user_id} "
            f"course={self.course_id} valid={self.is_valid}>"
        )
