"""Shared fixtures: in-memory repositories and the wired engine."""

import os
import tempfile
from types import SimpleNamespace
from uuid import UUID, uuid4

import pytest


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="coursepath-logs-"))

from fakes import (  # noqa: E402
    FakeCatalogRepository,
    FakeCertificateRepository,
    FakeProgressRepository,
    FakeQuizAttemptRepository,
)
from fastapi.testclient import TestClient  # noqa: E402

from coursepath.main import create_app, wire_services  # noqa: E402


@pytest.fixture
def catalog() -> FakeCatalogRepository:
    return FakeCatalogRepository()


@pytest.fixture
def progress_repo() -> FakeProgressRepository:
    return FakeProgressRepository()


@pytest.fixture
def attempts_repo() -> FakeQuizAttemptRepository:
    return FakeQuizAttemptRepository()


@pytest.fixture
def certificates_repo() -> FakeCertificateRepository:
    return FakeCertificateRepository()


@pytest.fixture
def engine(catalog, progress_repo, attempts_repo, certificates_repo) -> SimpleNamespace:
    """All engine components wired over the in-memory repositories."""
    state = SimpleNamespace()
    wire_services(
        state,
        catalog=catalog,
        progress=progress_repo,
        attempts=attempts_repo,
        certificates=certificates_repo,
    )
    return state


@pytest.fixture
def learner_id() -> UUID:
    """Test learner ID."""
    return uuid4()


@pytest.fixture
def app(catalog, progress_repo, attempts_repo, certificates_repo):
    """Application with services wired over the in-memory repositories."""
    application = create_app()
    wire_services(
        application.state,
        catalog=catalog,
        progress=progress_repo,
        attempts=attempts_repo,
        certificates=certificates_repo,
    )
    return application


@pytest.fixture
def client(app) -> TestClient:
    """HTTP client (lifespan not started, so no database connection)."""
    return TestClient(app)
