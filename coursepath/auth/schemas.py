"""Pydantic schemas for the authenticated learner."""

from uuid import UUID

from pydantic import BaseModel


class Learner(BaseModel):
    """Identity extracted from a validated access token."""

    id: UUID
    role: str | None = None
