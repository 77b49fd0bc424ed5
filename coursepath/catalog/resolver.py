"""Content graph resolver.

Flattens a course into the deterministic session order that defines "next":
module ``sort_order``, then session ``sort_order``, with creation time and
finally the id as tie-breaks so the order is total even when sort orders
collide.
"""

from typing import TYPE_CHECKING
from uuid import UUID

from coursepath.core.errors import NotFoundError

from .models import Course, Module, Session


if TYPE_CHECKING:
    from .repository import CatalogRepository


def _module_key(module: Module) -> tuple:
    return (module.sort_order, module.created_at, str(module.id))


def _session_key(session: Session) -> tuple:
    return (session.sort_order, session.created_at, str(session.id))


def order_sessions(
    modules: list[Module], sessions: list[Session]
) -> tuple[list[Module], list[Session]]:
    """Order modules and flatten their sessions into course order.

    Sessions whose module is not among ``modules`` are dropped.
    """
    ordered_modules = sorted(modules, key=_module_key)
    by_module: dict[UUID, list[Session]] = {m.id: [] for m in ordered_modules}
    for session in sessions:
        if session.module_id in by_module:
            by_module[session.module_id].append(session)

    ordered_sessions: list[Session] = []
    for module in ordered_modules:
        ordered_sessions.extend(sorted(by_module[module.id], key=_session_key))
    return ordered_modules, ordered_sessions


class CourseSequence:
    """Resolved, ordered view of one course."""

    def __init__(self, course: Course, modules: list[Module], sessions: list[Session]):
        self.course = course
        self.modules, self.sessions = order_sessions(modules, sessions)
        self._positions = {s.id: i for i, s in enumerate(self.sessions)}

    def __len__(self) -> int:
        return len(self.sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._positions

    @property
    def session_ids(self) -> list[UUID]:
        return [s.id for s in self.sessions]

    def position_of(self, session_id: UUID) -> int:
        """Zero-based position of a session in course order."""
        try:
            return self._positions[session_id]
        except KeyError:
            raise NotFoundError(
                f"Session {session_id} is not part of course {self.course.id}",
                "session_not_found",
            ) from None

    def get(self, session_id: UUID) -> Session:
        return self.sessions[self.position_of(session_id)]

    def predecessor_of(self, session_id: UUID) -> Session | None:
        position = self.position_of(session_id)
        return self.sessions[position - 1] if position > 0 else None

    def successor_of(self, session_id: UUID) -> Session | None:
        position = self.position_of(session_id)
        if position + 1 < len(self.sessions):
            return self.sessions[position + 1]
        return None

    def sessions_by_module(self) -> dict[UUID, list[Session]]:
        """Sessions grouped per module, both in course order."""
        grouped: dict[UUID, list[Session]] = {m.id: [] for m in self.modules}
        for session in self.sessions:
            grouped[session.module_id].append(session)
        return grouped


class ContentGraphResolver:
    """Resolves course structure from the catalog."""

    def __init__(self, catalog: "CatalogRepository"):
        self.catalog = catalog

    async def resolve(self, course_id: UUID) -> CourseSequence:
        """Resolve the ordered session sequence of a course.

        An empty sequence is valid (course under construction).

        Raises:
            NotFoundError: If the course does not exist
        """
        course = await self.catalog.get_course(course_id)
        if course is None:
            raise NotFoundError(f"Course {course_id} not found", "course_not_found")

        modules = await self.catalog.get_modules(course_id)
        sessions = await self.catalog.get_sessions(course_id)
        return CourseSequence(course, modules, sessions)

    async def resolve_for_session(self, session_id: UUID) -> CourseSequence:
        """Resolve the course sequence that contains a session."""
        course_id = await self.catalog.get_session_course_id(session_id)
        if course_id is None:
            raise NotFoundError(f"Session {session_id} not found", "session_not_found")
        sequence = await self.resolve(course_id)
        sequence.position_of(session_id)
        return sequence
