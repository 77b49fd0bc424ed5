"""Completion pipeline.

Runs the reactive steps that follow a session completion or a passed final
assessment, in order: unlock the successor, recompute the enrollment rollup,
issue the certificate. Every step re-checks its own precondition, so running
the pipeline again after a partial failure is safe.
"""

from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from coursepath.core.errors import DuplicateCertificateError

from .aggregator import EnrollmentRollup
from .models import Enrollment


if TYPE_CHECKING:
    from coursepath.catalog.resolver import CourseSequence
    from coursepath.certificates.models import Certificate
    from coursepath.certificates.service import CertificateIssuer

    from .aggregator import CompletionAggregator
    from .gate import SessionGateEvaluator

logger = structlog.get_logger(__name__)


class CompletionPipeline:
    """Explicit unlock -> aggregate -> certify cascade."""

    def __init__(
        self,
        gate: "SessionGateEvaluator",
        aggregator: "CompletionAggregator",
        issuer: "CertificateIssuer",
    ):
        self.gate = gate
        self.aggregator = aggregator
        self.issuer = issuer

    async def on_session_completed(
        self,
        enrollment: Enrollment,
        sequence: "CourseSequence",
        session_id: UUID,
    ) -> EnrollmentRollup:
        """Cascade after ``session_id`` transitioned to completed."""
        await self.gate.unlock_successor(enrollment, sequence, session_id)
        return await self.aggregate_and_certify(enrollment, sequence)

    async def aggregate_and_certify(
        self,
        enrollment: Enrollment,
        sequence: "CourseSequence | None" = None,
    ) -> EnrollmentRollup:
        """Recompute the rollup and issue the certificate once it is earned."""
        rollup = await self.aggregator.recompute(enrollment, sequence)
        if rollup.is_course_completed:
            await self.certify(enrollment)
        return rollup

    async def certify(self, enrollment: Enrollment) -> "Certificate | None":
        """Issue the certificate, treating a lost issuance race as success."""
        try:
            return await self.issuer.issue_if_eligible(
                enrollment.user_id, enrollment.course_id, enrollment=enrollment
            )
        except DuplicateCertificateError:
            logger.info(
                "certificate_race_resolved",
                user_id=str(enrollment.user_id),
                course_id=str(enrollment.course_id),
            )
            return await self.issuer.get_certificate(
                enrollment.user_id, enrollment.course_id
            )
