"""Persistence for certificates."""

from typing import TYPE_CHECKING
from uuid import UUID

from .models import Certificate


if TYPE_CHECKING:
    from cassandra.cluster import Session


class CertificateRepository:
    """Certificate slots and number reservations."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_certificate = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.certificates_by_learner
            WHERE user_id = ? AND course_id = ?
        """)

        self._list_certificates = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.certificates_by_learner WHERE user_id = ?
        """)

        # Lightweight transaction: one certificate per (learner, course)
        self._claim_slot = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.certificates_by_learner
            (user_id, course_id, id, enrollment_id, certificate_number, issued_at,
             final_score, completed_at, is_valid, invalidation_reason)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._reserve_number = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.certificates_by_number
            (certificate_number, user_id, course_id)
            VALUES (?, ?, ?)
            IF NOT EXISTS
        """)

        self._release_number = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.certificates_by_number
            WHERE certificate_number = ?
        """)

        self._get_by_number = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.certificates_by_number
            WHERE certificate_number = ?
        """)

    async def get(self, user_id: UUID, course_id: UUID) -> Certificate | None:
        """Get the certificate occupying a (learner, course) slot."""
        result = await self.session.aexecute(self._get_certificate, [user_id, course_id])
        row = result.one()
        return Certificate.from_row(row) if row else None

    async def list_for_learner(self, user_id: UUID) -> list[Certificate]:
        """All certificates of a learner, revoked ones included."""
        rows = await self.session.aexecute(self._list_certificates, [user_id])
        return [Certificate.from_row(row) for row in rows]

    async def get_by_number(self, certificate_number: str) -> Certificate | None:
        """Resolve a public certificate number."""
        result = await self.session.aexecute(self._get_by_number, [certificate_number])
        row = result.one()
        if not row:
            return None
        return await self.get(row.user_id, row.course_id)

    async def reserve_number(
        self, certificate_number: str, user_id: UUID, course_id: UUID
    ) -> bool:
        """Reserve a certificate number; False if already taken."""
        result = await self.session.aexecute(
            self._reserve_number, [certificate_number, user_id, course_id]
        )
        return result.was_applied

    async def release_number(self, certificate_number: str) -> None:
        await self.session.aexecute(self._release_number, [certificate_number])

    async def claim_slot(self, certificate: Certificate) -> bool:
        """Insert the certificate unless the (learner, course) slot is taken."""
        result = await self.session.aexecute(
            self._claim_slot,
            [
                certificate.user_id,
                certificate.course_id,
                certificate.id,
                certificate.enrollment_id,
                certificate.certificate_number,
                certificate.issued_at,
                certificate.final_score,
                certificate.completed_at,
                certificate.is_valid,
                certificate.invalidation_reason,
            ],
        )
        return result.was_applied
