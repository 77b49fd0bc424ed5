"""coursepath API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from coursepath.catalog.repository import CatalogRepository
from coursepath.catalog.resolver import ContentGraphResolver
from coursepath.certificates.repository import CertificateRepository
from coursepath.certificates.router import router as certificates_router
from coursepath.certificates.service import CertificateIssuer
from coursepath.config import Settings, get_settings
from coursepath.core.context import get_request_id
from coursepath.core.database import init_async_cassandra, shutdown_async_cassandra
from coursepath.core.logging import configure_structlog, get_logger
from coursepath.core.middleware import ERROR_CODE_HEADER, RequestContextMiddleware
from coursepath.core.redis import init_redis, shutdown_redis
from coursepath.health import router as health_router
from coursepath.progress.aggregator import CompletionAggregator
from coursepath.progress.gate import SessionGateEvaluator
from coursepath.progress.pipeline import CompletionPipeline
from coursepath.progress.repository import ProgressRepository
from coursepath.progress.router import router as progress_router
from coursepath.progress.service import ProgressService
from coursepath.progress.tracker import WatchProgressTracker
from coursepath.quizzes.repository import QuizAttemptRepository
from coursepath.quizzes.router import router as quizzes_router
from coursepath.quizzes.service import QuizService


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


def wire_services(
    state: Any,
    catalog: CatalogRepository,
    progress: ProgressRepository,
    attempts: QuizAttemptRepository,
    certificates: CertificateRepository,
    redis_client: Any = None,
    settings: Settings | None = None,
) -> None:
    """Build the engine components over the given repositories.

    Sets ``progress_tracker``, ``progress_service``, ``quiz_service`` and
    ``certificate_issuer`` (plus their collaborators) on ``state``.
    """
    settings = settings or get_settings()

    resolver = ContentGraphResolver(catalog)
    gate = SessionGateEvaluator(resolver, progress)
    aggregator = CompletionAggregator(resolver, progress)
    issuer = CertificateIssuer(
        repository=certificates,
        progress=progress,
        redis=redis_client,
        number_prefix=settings.certificate_number_prefix,
        number_retries=settings.certificate_number_retries,
    )
    pipeline = CompletionPipeline(gate, aggregator, issuer)
    tracker = WatchProgressTracker(
        resolver,
        progress,
        gate,
        pipeline,
        write_retries=settings.progress_write_retries,
    )

    state.resolver = resolver
    state.gate = gate
    state.pipeline = pipeline
    state.certificate_issuer = issuer
    state.progress_tracker = tracker
    state.progress_service = ProgressService(resolver, progress, pipeline)
    state.quiz_service = QuizService(
        catalog=catalog,
        resolver=resolver,
        attempts=attempts,
        progress=progress,
        tracker=tracker,
        pipeline=pipeline,
        insert_retries=settings.quiz_attempt_insert_retries,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    # Initialize Redis (non-critical - app works without it)
    redis_client = None
    try:
        redis_client = await init_redis()
    except Exception as e:
        logger.warning(
            "redis_init_skipped",
            error=str(e),
            message="Running without Redis - progression events disabled",
        )

    # Initialize Cassandra (async)
    try:
        session = await init_async_cassandra()
        keyspace = settings.cassandra_keyspace
        logger.info("cassandra_initialized")

        wire_services(
            app.state,
            catalog=CatalogRepository(session, keyspace),
            progress=ProgressRepository(session, keyspace),
            attempts=QuizAttemptRepository(
                session, keyspace, settings.quiz_attempt_start_ttl_seconds
            ),
            certificates=CertificateRepository(session, keyspace),
            redis_client=redis_client,
            settings=settings,
        )
        logger.info("engine_services_initialized", redis_enabled=redis_client is not None)
    except Exception as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database connection",
        )

    yield

    # Shutdown
    logger.info("shutting_down_application")
    await shutdown_redis()
    await shutdown_async_cassandra()


def _error_body(
    request: Request,
    status_code: int,
    message: str,
    code: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Uniform error payload; clients branch on ``code``."""
    return {
        "error": True,
        "code": code,
        "message": message,
        "status_code": status_code,
        "request_id": getattr(request.state, "request_id", None) or get_request_id(),
        **extra,
    }


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers that never expose stack traces."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        code = (exc.headers or {}).get(ERROR_CODE_HEADER)
        message = (
            str(exc.detail)
            if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
            else "Internal server error"
        )
        return ORJSONResponse(
            status_code=exc.status_code,
            headers=exc.headers,
            content=_error_body(request, exc.status_code, message, code),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        details = [
            {
                "field": ".".join(str(loc) for loc in err.get("loc", [])),
                "message": err.get("msg", "Invalid value"),
            }
            for err in exc.errors()
        ]
        logger.warning("request_validation_failed", fields=[d["field"] for d in details])
        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_error_body(
                request,
                status.HTTP_422_UNPROCESSABLE_ENTITY,
                "Validation error",
                "validation_error",
                details=details,
            ),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            path=request.url.path,
            method=request.method,
        )
        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(
                request,
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "An unexpected error occurred. Please try again later.",
                "internal_error",
            ),
        )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    interactive_docs = settings.is_development

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Learning progression and certification engine",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if interactive_docs else None,
        redoc_url=None,
        openapi_url="/openapi.json" if interactive_docs else None,
    )

    # Outermost, so every log line below carries the request id
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )
    register_exception_handlers(app)

    for router in (health_router, progress_router, quizzes_router, certificates_router):
        app.include_router(router)

    return app


app = create_app()


def run() -> None:
    """Serve the API with uvicorn using the configured host and port."""
    uvicorn.run(
        "coursepath.main:app",
        host=settings.api_host,
        port=settings.api_port,
        workers=1 if settings.api_reload else settings.api_workers,
        reload=settings.api_reload,
        log_config=None,
    )
