"""Tax user Pydantic schemas for API request/response models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class TaxUserResponse(BaseModel):
    """Schema for tax user API responses. Never exposes the password hash."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="User unique identifier")
    company_id: UUID = Field(description="Company the user belongs to")
    email: str = Field(description="Login email")
    name: str | None = None
    last_name: str | None = None
    phone_number: str | None = None
    is_active: bool
    is_owner: bool
    confirmed: bool
    roles: list[str] = Field(default_factory=list, description="Assigned role names")
    created_at: datetime


class CreateDeveloperUserRequest(BaseModel):
    """Schema for a developer creating a user directly in a company."""

    company_id: UUID = Field(..., description="Target company")
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone_number: str | None = Field(default=None, max_length=30)
    role_ids: list[UUID] = Field(default_factory=list)
    is_owner: bool = False
    ignore_user_limit: bool = Field(default=False, description="Bypass the plan user limit")


class ConfirmAccountRequest(BaseModel):
    email: EmailStr
    token: str = Field(..., min_length=1)


class PasswordResetRequest(BaseModel):
    email: EmailStr


class PasswordResetConfirm(BaseModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)


class UserStatusResult(BaseModel):
    """Outcome of enable/disable operations."""

    user_id: UUID
    is_active: bool
    revoked_sessions: int = 0
