"""Request middleware for context management and logging."""

import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from coursepath.core.context import (
    clear_context,
    set_correlation_id,
    set_request_id,
    set_trace_id,
)


logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
TRACE_ID_HEADER = "X-Trace-ID"
CORRELATION_ID_HEADER = "X-Correlation-ID"
TRACEPARENT_HEADER = "traceparent"
ERROR_CODE_HEADER = "X-Error-Code"

# Player heartbeats arrive every few seconds per learner
HEARTBEAT_SUFFIXES = ("/watch",)


def trace_id_from_traceparent(traceparent: str | None) -> str | None:
    """Trace id of a W3C ``traceparent`` header (version-trace-parent-flags)."""
    if not traceparent:
        return None
    parts = traceparent.split("-")
    return parts[1] if len(parts) == 4 else None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds request ids to the logging context and logs each request.

    ``X-Request-ID`` is reused when the caller sends one and is echoed on the
    response. Watch heartbeats are logged at debug level; engine rejections
    carry their error code in the completion log.
    """

    def __init__(
        self,
        app: ASGIApp,
        log_requests: bool = True,
        exclude_paths: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.log_requests = log_requests
        self.exclude_paths = exclude_paths or ["/health"]

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        start_time = time.perf_counter()
        request_id = self._bind_context(request)
        path = request.url.path
        should_log = self.log_requests and not any(
            path.startswith(excluded) for excluded in self.exclude_paths
        )
        heartbeat = path.endswith(HEARTBEAT_SUFFIXES)

        try:
            response = await call_next(request)
            if should_log:
                self._log_completed(request, response, start_time, heartbeat)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        except Exception as e:
            logger.exception(
                "request_failed",
                method=request.method,
                path=path,
                error_type=type(e).__name__,
                duration_ms=self._elapsed_ms(start_time),
            )
            raise
        finally:
            clear_context()

    @staticmethod
    def _bind_context(request: Request) -> str:
        request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id

        trace_id = request.headers.get(TRACE_ID_HEADER) or trace_id_from_traceparent(
            request.headers.get(TRACEPARENT_HEADER)
        )
        if trace_id:
            set_trace_id(trace_id)
        correlation_id = request.headers.get(CORRELATION_ID_HEADER)
        if correlation_id:
            set_correlation_id(correlation_id)
        return request_id

    @staticmethod
    def _elapsed_ms(start_time: float) -> float:
        return round((time.perf_counter() - start_time) * 1000, 2)

    def _log_completed(
        self,
        request: Request,
        response: Response,
        start_time: float,
        heartbeat: bool,
    ) -> None:
        status_code = response.status_code
        if status_code >= 500:
            log = logger.error
        elif status_code >= 400:
            log = logger.warning
        elif heartbeat:
            log = logger.debug
        else:
            log = logger.info

        log(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            error_code=response.headers.get(ERROR_CODE_HEADER),
            duration_ms=self._elapsed_ms(start_time),
            client_ip=request.client.host if request.client else None,
        )


__all__ = ["RequestContextMiddleware", "trace_id_from_traceparent"]
