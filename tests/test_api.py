"""HTTP tests for the progression API."""

from decimal import Decimal
from uuid import uuid4

import pytest
from fakes import add_course, add_enrollment, add_quiz
from fastapi.testclient import TestClient

from coursepath.auth.security import create_access_token
from coursepath.catalog.models import QuizScopeKind


@pytest.fixture
def auth_headers(learner_id) -> dict[str, str]:
    token = create_access_token({"sub": str(learner_id), "role": "student"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def course_setup(catalog, progress_repo, learner_id):
    course, sessions = add_course(catalog, modules=1, sessions_per_module=2)
    enrollment = add_enrollment(progress_repo, learner_id, course.id)
    return course, sessions, enrollment


class TestAuthentication:
    """Tests for bearer token handling."""

    def test_missing_token(self, client: TestClient, course_setup) -> None:
        _, _, enrollment = course_setup

        response = client.get(f"/v1/progress/enrollments/{enrollment.id}")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_invalid_token(self, client: TestClient, course_setup) -> None:
        _, _, enrollment = course_setup

        response = client.get(
            f"/v1/progress/enrollments/{enrollment.id}",
            headers={"Authorization": "Bearer not-a-token"},
        )

        assert response.status_code == 401


class TestProgressEndpoints:
    """Tests for /v1/progress."""

    def test_record_watch(
        self, client: TestClient, course_setup, auth_headers
    ) -> None:
        _, sessions, enrollment = course_setup

        response = client.put(
            f"/v1/progress/sessions/{sessions[0].id}/watch",
            json={
                "enrollment_id": str(enrollment.id),
                "watch_percentage": 85,
                "watch_time_seconds": 300,
            },
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["is_completed"] is True
        assert Decimal(str(data["watch_percentage"])) == 85

    def test_watch_out_of_range_is_422(
        self, client: TestClient, course_setup, auth_headers
    ) -> None:
        _, sessions, enrollment = course_setup

        response = client.put(
            f"/v1/progress/sessions/{sessions[0].id}/watch",
            json={
                "enrollment_id": str(enrollment.id),
                "watch_percentage": 101,
                "watch_time_seconds": 300,
            },
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["message"] == "Validation error"

    def test_locked_session_is_409(
        self, client: TestClient, course_setup, auth_headers
    ) -> None:
        _, sessions, enrollment = course_setup

        response = client.put(
            f"/v1/progress/sessions/{sessions[1].id}/watch",
            json={
                "enrollment_id": str(enrollment.id),
                "watch_percentage": 10,
                "watch_time_seconds": 10,
            },
            headers=auth_headers,
        )

        assert response.status_code == 409
        assert response.json()["code"] == "session_locked"

    def test_resource_access(
        self, client: TestClient, course_setup, auth_headers
    ) -> None:
        _, sessions, enrollment = course_setup

        response = client.post(
            f"/v1/progress/sessions/{sessions[0].id}/resources",
            json={"enrollment_id": str(enrollment.id)},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["resources_accessed"] is True

    def test_enrollment_progress(
        self, client: TestClient, course_setup, auth_headers
    ) -> None:
        _, sessions, enrollment = course_setup

        response = client.get(
            f"/v1/progress/enrollments/{enrollment.id}", headers=auth_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["sessions_total"] == 2
        assert data["next_session_id"] == str(sessions[0].id)
        assert [s["is_unlocked"] for s in data["sessions"]] == [True, False]

    def test_next_session(
        self, client: TestClient, course_setup, auth_headers
    ) -> None:
        _, sessions, enrollment = course_setup

        response = client.get(
            f"/v1/progress/enrollments/{enrollment.id}/next", headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["session"]["session_id"] == str(sessions[0].id)

    def test_unknown_enrollment_is_404(self, client: TestClient, auth_headers) -> None:
        response = client.get(
            f"/v1/progress/enrollments/{uuid4()}", headers=auth_headers
        )

        assert response.status_code == 404
        assert response.json()["code"] == "enrollment_not_found"


class TestQuizEndpoints:
    """Tests for /v1/quizzes."""

    def test_start_submit_review(
        self, client: TestClient, catalog, course_setup, auth_headers
    ) -> None:
        course, sessions, _ = course_setup
        quiz = add_quiz(catalog, course.id, QuizScopeKind.SESSION, sessions[0].id)

        started = client.post(
            f"/v1/quizzes/{quiz.id}/attempts/start", headers=auth_headers
        )
        assert started.status_code == 201
        presentation = started.json()
        assert "is_correct" not in presentation["questions"][0]["options"][0]

        answers = [
            {
                "question_id": str(q.id),
                "selected_option_ids": [str(q.options[0].id)],
            }
            for q in quiz.questions
        ]
        submitted = client.post(
            f"/v1/quizzes/{quiz.id}/attempts",
            json={"answers": answers, "attempt_id": presentation["attempt_id"]},
            headers=auth_headers,
        )
        assert submitted.status_code == 201
        assert submitted.json()["score"] == 100

        history = client.get(f"/v1/quizzes/{quiz.id}/attempts", headers=auth_headers)
        assert history.json()["attempts_remaining"] == 2

        review = client.get(
            f"/v1/quizzes/attempts/{presentation['attempt_id']}", headers=auth_headers
        )
        assert review.status_code == 200
        assert review.json()["show_correct_answers"] is False

    def test_attempt_limit_is_409(
        self, client: TestClient, catalog, course_setup, auth_headers
    ) -> None:
        course, sessions, _ = course_setup
        quiz = add_quiz(
            catalog, course.id, QuizScopeKind.SESSION, sessions[0].id, max_attempts=1
        )

        first = client.post(
            f"/v1/quizzes/{quiz.id}/attempts", json={"answers": []}, headers=auth_headers
        )
        second = client.post(
            f"/v1/quizzes/{quiz.id}/attempts", json={"answers": []}, headers=auth_headers
        )

        assert first.status_code == 201
        assert second.status_code == 409
        assert second.json()["code"] == "attempt_limit_exceeded"


class TestCertificateEndpoints:
    """Tests for /v1/certificates."""

    def test_complete_claim_and_verify(
        self, client: TestClient, course_setup, auth_headers
    ) -> None:
        course, sessions, enrollment = course_setup

        not_yet = client.post(
            f"/v1/certificates/courses/{course.id}/claim", headers=auth_headers
        )
        assert not_yet.status_code == 409
        assert not_yet.json()["code"] == "course_not_completed"

        for session in sessions:
            client.put(
                f"/v1/progress/sessions/{session.id}/watch",
                json={
                    "enrollment_id": str(enrollment.id),
                    "watch_percentage": 100,
                    "watch_time_seconds": 600,
                },
                headers=auth_headers,
            )

        certificate = client.get(
            f"/v1/certificates/courses/{course.id}", headers=auth_headers
        )
        assert certificate.status_code == 200
        number = certificate.json()["certificate_number"]

        claimed = client.post(
            f"/v1/certificates/courses/{course.id}/claim", headers=auth_headers
        )
        assert claimed.json()["certificate_number"] == number

        listing = client.get("/v1/certificates", headers=auth_headers)
        assert listing.json()["total"] == 1

        verified = client.get(f"/v1/certificates/verify/{number}")
        assert verified.status_code == 200
        assert verified.json()["is_valid"] is True

    def test_missing_certificate_is_404(
        self, client: TestClient, course_setup, auth_headers
    ) -> None:
        course, _, _ = course_setup

        response = client.get(
            f"/v1/certificates/courses/{course.id}", headers=auth_headers
        )

        assert response.status_code == 404

    def test_verify_unknown_number(self, client: TestClient) -> None:
        response = client.get("/v1/certificates/verify/CP-20260101-0000000000")

        assert response.status_code == 200
        assert response.json()["is_valid"] is False
