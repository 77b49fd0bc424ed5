# Core infrastructure
from coursepath.core.context import (
    RequestContext,
    bind_enrollment,
    clear_context,
    get_context,
    get_request_id,
    get_user_id,
    set_correlation_id,
    set_request_id,
    set_trace_id,
    set_user_id,
)
from coursepath.core.logging import configure_structlog, get_logger
from coursepath.core.middleware import RequestContextMiddleware


__all__ = [
    "RequestContext",
    "RequestContextMiddleware",
    "bind_enrollment",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_logger",
    "get_request_id",
    "get_user_id",
    "set_correlation_id",
    "set_request_id",
    "set_trace_id",
    "set_user_id",
]
