"""Invitation model type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import TypedDict
from uuid import UUID


class InvitationStatus(str, Enum):
    """Invitation status values matching database enum.

    Every status except ``PENDING`` is terminal.
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    FAILED = "failed"


class Invitation(TypedDict):
    """Invitation table row representation.

    The row is the source of truth; ``token`` is a signed capability
    referencing ``id``.
    """

    id: UUID
    company_id: UUID
    invited_by_user_id: UUID
    email: str
    token: str
    invitation_link: str
    expires_at: datetime
    status: InvitationStatus
    role_ids: list[UUID]
    personal_message: str | None
    ip_address: str | None
    user_agent: str | None
    accepted_at: datetime | None
    registered_user_id: UUID | None
    cancelled_at: datetime | None
    cancelled_by_user_id: UUID | None
    cancellation_reason: str | None
    created_at: datetime
    updated_at: datetime | None
