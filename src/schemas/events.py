"""Domain events published for downstream consumers (email, presence, audit).

Consumers have no join access to this service's tables, so every event
carries the display fields they need (company name/domain, user names).
"""

from datetime import datetime, timezone
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DomainEvent(BaseModel):
    """Base class for all published events."""

    model_config = ConfigDict(frozen=True)

    event_id: UUID = Field(default_factory=uuid4, description="Unique event identifier")
    occurred_on: datetime = Field(default_factory=_utcnow, description="When the event occurred")

    @property
    def event_type(self) -> str:
        """Name consumers subscribe to."""
        return type(self).__name__


class UserInvitationSentEvent(DomainEvent):
    invitation_id: UUID
    company_id: UUID
    email: str
    invitation_link: str
    expires_at: datetime
    company_name: str | None = None
    company_full_name: str | None = None
    company_domain: str | None = None
    is_company: bool = True
    personal_message: str | None = None


class InvitationCancelledEvent(DomainEvent):
    invitation_id: UUID
    company_id: UUID
    email: str
    cancelled_by_user_id: UUID
    cancellation_reason: str | None = None
    company_name: str | None = None
    company_domain: str | None = None


class InvitationExpiredEvent(DomainEvent):
    invitation_id: UUID
    company_id: UUID
    email: str
    company_name: str | None = None
    company_domain: str | None = None


class UserRegisteredEvent(DomainEvent):
    tax_user_id: UUID
    email: str
    name: str | None = None
    last_name: str | None = None
    company_id: UUID
    company_name: str | None = None
    company_full_name: str | None = None
    company_domain: str | None = None
    is_company: bool = True


class UserLoginEvent(DomainEvent):
    user_id: UUID
    email: str
    session_id: UUID
    ip_address: str | None = None
    device: str | None = None


class UserPresenceChangedEvent(DomainEvent):
    user_id: UUID
    company_id: UUID
    is_online: bool


class AccountConfirmationRequestedEvent(DomainEvent):
    """Carries the confirmation link for a freshly self-registered owner."""

    user_id: UUID
    email: str
    confirmation_link: str
    company_id: UUID
    company_name: str | None = None
    company_domain: str | None = None


class AccountConfirmedEvent(DomainEvent):
    user_id: UUID
    email: str
    company_id: UUID
    company_name: str | None = None
    company_domain: str | None = None


class EmployeeAccountConfirmedEvent(DomainEvent):
    user_id: UUID
    email: str
    company_id: UUID
    company_name: str | None = None
    company_domain: str | None = None


class PasswordResetRequestedEvent(DomainEvent):
    user_id: UUID
    email: str
    reset_link: str
