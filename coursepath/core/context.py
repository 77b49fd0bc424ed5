"""Request context management using contextvars.

Each request gets a unique ID plus optional learner, enrollment and trace
information that log processors read anywhere in the call stack.
"""

from contextvars import ContextVar, Token
from typing import Any
from uuid import UUID, uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
enrollment_id_var: ContextVar[str | None] = ContextVar("enrollment_id", default=None)
course_id_var: ContextVar[str | None] = ContextVar("course_id", default=None)

_OPTIONAL_VARS: dict[str, ContextVar[str | None]] = {
    "user_id": user_id_var,
    "trace_id": trace_id_var,
    "correlation_id": correlation_id_var,
    "enrollment_id": enrollment_id_var,
    "course_id": course_id_var,
}


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid4())


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context, generating one if missing."""
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


def get_user_id() -> str | None:
    """Get the current learner/user ID."""
    return user_id_var.get()


def set_user_id(user_id: str | UUID | None) -> None:
    """Set the learner/user ID for the current context."""
    user_id_var.set(str(user_id) if user_id is not None else None)


def set_trace_id(trace_id: str | None) -> None:
    """Set the distributed trace ID for the current context."""
    trace_id_var.set(trace_id)


def set_correlation_id(correlation_id: str | None) -> None:
    """Set the correlation ID for the current context."""
    correlation_id_var.set(correlation_id)


def bind_enrollment(enrollment_id: str | UUID, course_id: str | UUID) -> None:
    """Tag the rest of the request with the enrollment being progressed."""
    enrollment_id_var.set(str(enrollment_id))
    course_id_var.set(str(course_id))


def get_context() -> dict[str, Any]:
    """Get all populated context variables as a dictionary."""
    context: dict[str, Any] = {}
    request_id = get_request_id()
    if request_id:
        context["request_id"] = request_id
    for name, var in _OPTIONAL_VARS.items():
        value = var.get()
        if value:
            context[name] = value
    return context


def clear_context() -> None:
    """Clear all context variables (end of request)."""
    request_id_var.set("")
    for var in _OPTIONAL_VARS.values():
        var.set(None)


class RequestContext:
    """Context manager for a request-like scope outside HTTP.

    Usage:
        with RequestContext(user_id=learner_id):
            await tracker.record_watch(...)  # logs carry request_id and user_id
    """

    def __init__(
        self,
        request_id: str | None = None,
        user_id: str | UUID | None = None,
        trace_id: str | None = None,
    ) -> None:
        self.request_id = request_id
        self.user_id = user_id
        self.trace_id = trace_id
        self._tokens: list[tuple[ContextVar, Token]] = []

    def __enter__(self) -> "RequestContext":
        self._tokens.append(
            (request_id_var, request_id_var.set(self.request_id or generate_request_id()))
        )
        if self.user_id is not None:
            self._tokens.append((user_id_var, user_id_var.set(str(self.user_id))))
        if self.trace_id is not None:
            self._tokens.append((trace_id_var, trace_id_var.set(self.trace_id)))
        return self

    def __exit__(self, *_: object) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
