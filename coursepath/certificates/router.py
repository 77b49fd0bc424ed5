"""Certificate API endpoints.

Provides routes for:
- The learner's certificate for a course, and claiming it
- The learner's valid certificates
- Public verification by certificate number
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from coursepath.auth.dependencies import CurrentLearner
from coursepath.core.errors import EngineError, handle_engine_error
from coursepath.progress.dependencies import ProgressServiceDep

from .dependencies import CertificateIssuerDep
from .schemas import (
    CertificateListResponse,
    CertificateResponse,
    CertificateVerificationResponse,
)


router = APIRouter(prefix="/v1/certificates", tags=["certificates"])


@router.get(
    "",
    response_model=CertificateListResponse,
    summary="List my certificates",
)
async def list_my_certificates(
    issuer: CertificateIssuerDep,
    learner: CurrentLearner,
) -> CertificateListResponse:
    """Valid certificates of the current learner."""
    certificates = await issuer.list_certificates(learner.id)
    return CertificateListResponse(
        items=[CertificateResponse.from_entity(c) for c in certificates],
        total=len(certificates),
    )


@router.get(
    "/courses/{course_id}",
    response_model=CertificateResponse,
    summary="Get course certificate",
)
async def get_course_certificate(
    course_id: UUID,
    issuer: CertificateIssuerDep,
    learner: CurrentLearner,
) -> CertificateResponse:
    """Certificate of the current learner for a course."""
    certificate = await issuer.get_certificate(learner.id, course_id)
    if certificate is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Certificate not found",
        )
    return CertificateResponse.from_entity(certificate)


@router.post(
    "/courses/{course_id}/claim",
    response_model=CertificateResponse,
    summary="Claim course certificate",
)
async def claim_course_certificate(
    course_id: UUID,
    progress_service: ProgressServiceDep,
    learner: CurrentLearner,
) -> CertificateResponse:
    """Issue the certificate if the course is completed.

    Idempotent: returns the existing certificate when already issued.
    """
    try:
        certificate = await progress_service.claim_certificate(learner.id, course_id)
    except EngineError as e:
        raise handle_engine_error(e) from e
    return CertificateResponse.from_entity(certificate)


@router.get(
    "/verify/{certificate_number}",
    response_model=CertificateVerificationResponse,
    summary="Verify certificate",
)
async def verify_certificate(
    certificate_number: str,
    issuer: CertificateIssuerDep,
) -> CertificateVerificationResponse:
    """Public verification of a certificate number (no authentication)."""
    return await issuer.verify(certificate_number)
