"""Invitation Pydantic schemas for API request/response models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from src.models.invitation import InvitationStatus


class SendInvitationRequest(BaseModel):
    """Schema for inviting a new member into the caller's company."""

    email: EmailStr = Field(..., description="Email address to invite")
    role_ids: list[UUID] = Field(default_factory=list, description="Roles granted on registration")
    personal_message: str | None = Field(default=None, max_length=500, description="Note shown in the email")


class InvitationSent(BaseModel):
    """Result of a successful invitation send."""

    invitation_id: UUID
    email: str
    invitation_link: str
    expires_at: datetime
    company_name: str | None = None


class InvitationResponse(BaseModel):
    """Schema for invitation API responses. Never exposes the token."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Invitation unique identifier")
    company_id: UUID = Field(description="Company the invitation is for")
    invited_by_user_id: UUID = Field(description="User who sent the invitation")
    email: str = Field(description="Invited email address")
    status: InvitationStatus = Field(description="Current status")
    role_ids: list[UUID] = Field(default_factory=list, description="Roles granted on registration")
    personal_message: str | None = None
    expires_at: datetime = Field(description="Expiration timestamp")
    created_at: datetime = Field(description="Creation timestamp")
    accepted_at: datetime | None = None
    registered_user_id: UUID | None = None
    cancelled_at: datetime | None = None
    cancelled_by_user_id: UUID | None = None
    cancellation_reason: str | None = None


class InvitationValidation(BaseModel):
    """Pre-registration view of an invitation for the registration UI."""

    is_valid: bool
    invitation_id: UUID | None = None
    email: str | None = None
    company_id: UUID | None = None
    company_name: str | None = None
    company_full_name: str | None = None
    company_domain: str | None = None
    is_company: bool = True
    role_ids: list[UUID] = Field(default_factory=list)
    expires_at: datetime | None = None
    error_message: str | None = None


class RegisterByInvitationRequest(BaseModel):
    """Schema for creating an account from an invitation token."""

    token: str = Field(..., min_length=1, description="Invitation token from the link")
    password: str = Field(..., min_length=8, max_length=128, description="New account password")
    name: str = Field(..., min_length=1, max_length=100, description="First name")
    last_name: str = Field(..., min_length=1, max_length=100, description="Last name")
    phone_number: str | None = Field(default=None, max_length=30, description="Optional phone number")


class RegistrationResult(BaseModel):
    user_id: UUID
    email: str
    company_id: UUID
    roles: list[str] = Field(default_factory=list)
    inherited_permissions: int = Field(default=0, description="Permissions copied from Administrator roles")


class CancelInvitationRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500, description="Why the invitation was cancelled")


class BulkCancelInvitationsRequest(BaseModel):
    invitation_ids: list[UUID] = Field(..., min_length=1, description="Invitations to cancel")
    reason: str | None = Field(default=None, max_length=500)


class CancelResult(BaseModel):
    cancelled_count: int
    cancelled_ids: list[UUID] = Field(default_factory=list)
    skipped_ids: list[UUID] = Field(default_factory=list, description="Not pending or not in the company")


class InvitationStats(BaseModel):
    """Per-company invitation counters."""

    total: int = 0
    pending: int = 0
    accepted: int = 0
    cancelled: int = 0
    expired: int = 0
    failed: int = 0
    last_24_hours: int = 0
    last_7_days: int = 0
    last_30_days: int = 0
    acceptance_rate: float = Field(default=0.0, description="Accepted / total, in percent")


class CanSendMoreResponse(BaseModel):
    can_send: bool
    reason: str | None = None
    plan_active: bool
    user_limit: int
    active_users: int
    pending_invitations: int
    available_slots: int
    remaining_invitations: int


class ExpireSweepResult(BaseModel):
    expired_count: int
    invitation_ids: list[UUID] = Field(default_factory=list)
