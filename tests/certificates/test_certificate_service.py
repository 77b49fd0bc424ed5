"""Tests for certificate issuance and verification."""

import json
import re
from datetime import UTC, datetime
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fakes import add_course, add_enrollment
from redis.exceptions import ConnectionError as RedisConnectionError

from coursepath.certificates.service import CertificateIssuer, generate_certificate_number
from coursepath.core.errors import ConflictError, DuplicateCertificateError
from coursepath.progress.models import SessionProgress


@pytest.fixture
def completed_enrollment(catalog, progress_repo, learner_id):
    """Enrollment whose course completion has already been recorded."""
    course, sessions = add_course(catalog, modules=1, sessions_per_module=2)
    enrollment = add_enrollment(progress_repo, learner_id, course.id)
    for score, session in zip((80, 91), sessions, strict=True):
        progress = SessionProgress.new(learner_id, course.id, session.id, enrollment.id)
        progress.is_completed = True
        progress.quiz_passed = True
        progress.quiz_score = score
        progress_repo.progress[(learner_id, course.id, session.id)] = progress
    stored = progress_repo.enrollments[enrollment.id]
    stored.completed_at = datetime.now(UTC)
    return stored


class TestCertificateNumber:
    """Tests for certificate number generation."""

    def test_format(self) -> None:
        number = generate_certificate_number("CP", datetime(2026, 3, 9, tzinfo=UTC))

        assert re.fullmatch(r"CP-20260309-[0-9A-F]{10}", number)

    def test_numbers_differ(self) -> None:
        assert len({generate_certificate_number("CP") for _ in range(50)}) == 50


class TestIssueIfEligible:
    """Tests for minting certificates."""

    @pytest.mark.asyncio
    async def test_not_completed_issues_nothing(
        self, engine, catalog, progress_repo, certificates_repo, learner_id
    ) -> None:
        course, _ = add_course(catalog)
        add_enrollment(progress_repo, learner_id, course.id)

        result = await engine.certificate_issuer.issue_if_eligible(learner_id, course.id)

        assert result is None
        assert certificates_repo.certificates == {}

    @pytest.mark.asyncio
    async def test_issue_once(
        self, engine, completed_enrollment, certificates_repo, learner_id
    ) -> None:
        issuer = engine.certificate_issuer
        course_id = completed_enrollment.course_id

        first = await issuer.issue_if_eligible(learner_id, course_id)
        second = await issuer.issue_if_eligible(learner_id, course_id)

        assert first.certificate_number == second.certificate_number
        assert certificates_repo.claims == 1
        assert first.enrollment_id == completed_enrollment.id
        assert first.completed_at == completed_enrollment.completed_at

    @pytest.mark.asyncio
    async def test_final_score_is_mean_of_quiz_scores(
        self, engine, completed_enrollment, learner_id
    ) -> None:
        """(80 + 91) / 2 = 85.5, rounded half up."""
        certificate = await engine.certificate_issuer.issue_if_eligible(
            learner_id, completed_enrollment.course_id
        )

        assert certificate.final_score == 86

    @pytest.mark.asyncio
    async def test_final_assessment_score_wins(
        self, engine, completed_enrollment, progress_repo, learner_id
    ) -> None:
        progress_repo.enrollments[completed_enrollment.id].final_assessment_score = 72

        certificate = await engine.certificate_issuer.issue_if_eligible(
            learner_id, completed_enrollment.course_id
        )

        assert certificate.final_score == 72

    @pytest.mark.asyncio
    async def test_lost_race_raises_duplicate(
        self, engine, completed_enrollment, certificates_repo, learner_id
    ) -> None:
        certificates_repo.concurrent_issuer = True

        with pytest.raises(DuplicateCertificateError) as exc_info:
            await engine.certificate_issuer.issue_if_eligible(
                learner_id, completed_enrollment.course_id
            )

        assert isinstance(exc_info.value, ConflictError)
        # our reserved number was released, only the winner's remains
        assert list(certificates_repo.numbers) == ["CP-20260101-WINNER0000"]

    @pytest.mark.asyncio
    async def test_pipeline_treats_lost_race_as_success(
        self, engine, completed_enrollment, certificates_repo
    ) -> None:
        certificates_repo.concurrent_issuer = True

        certificate = await engine.pipeline.certify(completed_enrollment)

        assert certificate.certificate_number == "CP-20260101-WINNER0000"
        assert len(certificates_repo.certificates) == 1

    @pytest.mark.asyncio
    async def test_revoked_certificate_is_not_reissued(
        self, engine, completed_enrollment, certificates_repo, learner_id
    ) -> None:
        issuer = engine.certificate_issuer
        course_id = completed_enrollment.course_id
        issued = await issuer.issue_if_eligible(learner_id, course_id)
        revoked = certificates_repo.certificates[(learner_id, course_id)]
        revoked.is_valid = False
        revoked.invalidation_reason = "fraud"

        again = await issuer.issue_if_eligible(learner_id, course_id)

        assert again.certificate_number == issued.certificate_number
        assert again.is_valid is False
        assert certificates_repo.claims == 1

    @pytest.mark.asyncio
    async def test_number_collisions_exhaust_retries(
        self, completed_enrollment, progress_repo, certificates_repo, learner_id
    ) -> None:
        certificates_repo.reserve_number = AsyncMock(return_value=False)
        issuer = CertificateIssuer(certificates_repo, progress_repo, number_retries=2)

        with pytest.raises(ConflictError) as exc_info:
            await issuer.issue_if_eligible(learner_id, completed_enrollment.course_id)

        assert exc_info.value.code == "certificate_number_conflict"
        assert certificates_repo.reserve_number.await_count == 2

    @pytest.mark.asyncio
    async def test_publishes_issued_event(
        self, completed_enrollment, progress_repo, certificates_repo, learner_id
    ) -> None:
        redis_mock = AsyncMock()
        issuer = CertificateIssuer(certificates_repo, progress_repo, redis=redis_mock)

        certificate = await issuer.issue_if_eligible(
            learner_id, completed_enrollment.course_id
        )

        channel, payload = redis_mock.publish.await_args[0]
        assert channel.endswith(str(learner_id))
        message = json.loads(payload)
        assert message["type"] == "certificate_issued"
        assert message["data"]["certificate_number"] == certificate.certificate_number

    @pytest.mark.asyncio
    async def test_publish_failure_does_not_fail_issuance(
        self, completed_enrollment, progress_repo, certificates_repo, learner_id
    ) -> None:
        redis_mock = AsyncMock()
        redis_mock.publish = AsyncMock(side_effect=RedisConnectionError("down"))
        issuer = CertificateIssuer(certificates_repo, progress_repo, redis=redis_mock)

        certificate = await issuer.issue_if_eligible(
            learner_id, completed_enrollment.course_id
        )

        assert certificate is not None
        assert certificates_repo.claims == 1


class TestQueries:
    """Tests for listing and verification."""

    @pytest.mark.asyncio
    async def test_list_excludes_revoked(
        self, engine, completed_enrollment, certificates_repo, learner_id
    ) -> None:
        issuer = engine.certificate_issuer
        await issuer.issue_if_eligible(learner_id, completed_enrollment.course_id)

        assert len(await issuer.list_certificates(learner_id)) == 1

        certificates_repo.certificates[
            (learner_id, completed_enrollment.course_id)
        ].is_valid = False

        assert await issuer.list_certificates(learner_id) == []

    @pytest.mark.asyncio
    async def test_verify(
        self, engine, completed_enrollment, certificates_repo, learner_id
    ) -> None:
        issuer = engine.certificate_issuer
        certificate = await issuer.issue_if_eligible(
            learner_id, completed_enrollment.course_id
        )

        valid = await issuer.verify(certificate.certificate_number)
        assert valid.is_valid is True
        assert valid.certificate.id == certificate.id

        certificates_repo.certificates[
            (learner_id, completed_enrollment.course_id)
        ].is_valid = False
        revoked = await issuer.verify(certificate.certificate_number)
        assert revoked.is_valid is False
        assert revoked.message == "Certificate has been revoked"

    @pytest.mark.asyncio
    async def test_verify_unknown_number(self, engine) -> None:
        result = await engine.certificate_issuer.verify("CP-20260101-0000000000")

        assert result.is_valid is False
        assert result.certificate is None

    @pytest.mark.asyncio
    async def test_other_learner_has_no_certificate(
        self, engine, completed_enrollment, learner_id
    ) -> None:
        await engine.certificate_issuer.issue_if_eligible(
            learner_id, completed_enrollment.course_id
        )

        assert (
            await engine.certificate_issuer.get_certificate(
                uuid4(), completed_enrollment.course_id
            )
            is None
        )
