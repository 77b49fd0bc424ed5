"""Certificate issuer.

Mints the certificate once course completion holds. Issuance is idempotent:
an existing certificate (valid or revoked) is returned unchanged. Minting
reserves a unique number and then claims the (learner, course) slot, both
with lightweight transactions. Losing the slot race raises
``DuplicateCertificateError``, which callers treat as success.
"""

import secrets
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

import structlog

from coursepath.core.errors import ConflictError, DuplicateCertificateError
from coursepath.core.redis import publish_progression_event
from coursepath.progress.models import Enrollment
from coursepath.utils.numbers import round_half_up

from .models import Certificate
from .schemas import CertificateResponse, CertificateVerificationResponse


if TYPE_CHECKING:
    from redis.asyncio import Redis

    from coursepath.progress.repository import ProgressRepository

    from .repository import CertificateRepository

logger = structlog.get_logger(__name__)


def generate_certificate_number(prefix: str, now: datetime | None = None) -> str:
    """PREFIX-YYYYMMDD-XXXXXXXXXX with 10 random uppercase hex characters."""
    now = now or datetime.now(UTC)
    return f"{prefix}-{now:%Y%m%d}-{secrets.token_hex(5).upper()}"


class CertificateIssuer:
    """Issues, lists and verifies certificates."""

    def __init__(
        self,
        repository: "CertificateRepository",
        progress: "ProgressRepository",
        redis: "Redis | None" = None,
        number_prefix: str = "CP",
        number_retries: int = 5,
    ):
        self.repository = repository
        self.progress = progress
        self.redis = redis
        self.number_prefix = number_prefix
        self.number_retries = number_retries

    async def _final_score(self, enrollment: Enrollment) -> int | None:
        """Final assessment score, else mean of passed session quiz scores."""
        if enrollment.final_assessment_score is not None:
            return enrollment.final_assessment_score

        progress = await self.progress.get_course_progress(
            enrollment.user_id, enrollment.course_id
        )
        scores = [
            p.quiz_score
            for p in progress.values()
            if p.quiz_passed and p.quiz_score is not None
        ]
        if not scores:
            return None
        return round_half_up(Decimal(sum(scores)) / len(scores))

    async def _reserve_number(self, user_id: UUID, course_id: UUID) -> str:
        for _ in range(self.number_retries):
            number = generate_certificate_number(self.number_prefix)
            if await self.repository.reserve_number(number, user_id, course_id):
                return number
            logger.warning("certificate_number_collision", certificate_number=number)
        raise ConflictError(
            "Could not allocate a certificate number", "certificate_number_conflict"
        )

    async def issue_if_eligible(
        self,
        user_id: UUID,
        course_id: UUID,
        enrollment: Enrollment | None = None,
    ) -> Certificate | None:
        """Issue the course certificate if the learner completed the course.

        Returns:
            None when the course is not completed, otherwise the certificate
            (the existing one if already issued, even when revoked)

        Raises:
            DuplicateCertificateError: A concurrent trigger minted it first
        """
        if enrollment is None:
            enrollment = await self.progress.get_enrollment_for_learner(
                user_id, course_id
            )
        if enrollment is None or not enrollment.is_completed:
            return None

        existing = await self.repository.get(user_id, course_id)
        if existing is not None:
            return existing

        number = await self._reserve_number(user_id, course_id)
        certificate = Certificate(
            id=uuid4(),
            user_id=user_id,
            course_id=course_id,
            enrollment_id=enrollment.id,
            certificate_number=number,
            final_score=await self._final_score(enrollment),
            completed_at=enrollment.completed_at,
        )

        if not await self.repository.claim_slot(certificate):
            await self.repository.release_number(number)
            raise DuplicateCertificateError(
                f"Certificate for course {course_id} already issued"
            )

        logger.info(
            "certificate_issued",
            certificate_number=certificate.certificate_number,
            user_id=str(user_id),
            course_id=str(course_id),
            final_score=certificate.final_score,
        )
        await self._publish_issued(certificate)
        return certificate

    async def _publish_issued(self, certificate: Certificate) -> None:
        """Announce the certificate to the notifications service."""
        await publish_progression_event(
            self.redis,
            str(certificate.user_id),
            "certificate_issued",
            {
                "certificate_id": str(certificate.id),
                "certificate_number": certificate.certificate_number,
                "course_id": str(certificate.course_id),
                "issued_at": certificate.issued_at.isoformat(),
            },
        )

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def get_certificate(
        self, user_id: UUID, course_id: UUID
    ) -> Certificate | None:
        """Certificate of a learner for a course, if any."""
        return await self.repository.get(user_id, course_id)

    async def list_certificates(self, user_id: UUID) -> list[Certificate]:
        """Valid certificates of a learner, newest first."""
        certificates = await self.repository.list_for_learner(user_id)
        valid = [c for c in certificates if c.is_valid]
        return sorted(valid, key=lambda c: c.issued_at, reverse=True)

    async def verify(self, certificate_number: str) -> CertificateVerificationResponse:
        """Public verification of a certificate number."""
        certificate = await self.repository.get_by_number(certificate_number)
        if certificate is None:
            return CertificateVerificationResponse(
                certificate_number=certificate_number,
                is_valid=False,
                message="Certificate not found",
            )

        return CertificateVerificationResponse(
            certificate_number=certificate_number,
            is_valid=certificate.is_valid,
            message=(
                "Certificate is valid"
                if certificate.is_valid
                else "Certificate has been revoked"
            ),
            certificate=CertificateResponse.from_entity(certificate),
        )
