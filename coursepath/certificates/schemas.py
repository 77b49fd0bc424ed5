"""Pydantic schemas for certificates."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from .models import Certificate


class CertificateResponse(BaseModel):
    """Issued certificate."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    course_id: UUID
    certificate_number: str
    issued_at: datetime
    final_score: int | None = None
    completed_at: datetime | None = None
    is_valid: bool
    invalidation_reason: str | None = None

    @classmethod
    def from_entity(cls, entity: Certificate) -> "CertificateResponse":
        """Create response from entity."""
        return cls(
            id=entity.id,
            user_id=entity.user_id,
            course_id=entity.course_id,
            certificate_number=entity.certificate_number,
            issued_at=entity.issued_at,
            final_score=entity.final_score,
            completed_at=entity.completed_at,
            is_valid=entity.is_valid,
            invalidation_reason=entity.invalidation_reason,
        )


class CertificateListResponse(BaseModel):
    """Valid certificates of the learner."""

    items: list[CertificateResponse]
    total: int


class CertificateVerificationResponse(BaseModel):
    """Public verification result."""

    certificate_number: str
    is_valid: bool
    message: str
    certificate: CertificateResponse | None = None
