"""Company Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator


class CompanyRegisterRequest(BaseModel):
    """Schema for self-registering a company and its first Owner."""

    is_company: bool = Field(default=True, description="False for individual accounts")
    company_name: str | None = Field(default=None, max_length=255, description="Business name")
    full_name: str | None = Field(default=None, max_length=255, description="Individual full name")
    domain: str = Field(..., min_length=2, max_length=100, pattern=r"^[a-z0-9][a-z0-9-]*$")
    address: dict[str, Any] | None = Field(default=None, description="Free-form address")
    email: EmailStr = Field(..., description="Owner login email")
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=100, description="Owner first name")
    last_name: str = Field(..., min_length=1, max_length=100, description="Owner last name")
    phone_number: str | None = Field(default=None, max_length=30)

    @model_validator(mode="after")
    def check_display_name(self) -> "CompanyRegisterRequest":
        if self.is_company and not self.company_name:
            raise ValueError("company_name is required for companies")
        if not self.is_company and not self.full_name:
            raise ValueError("full_name is required for individual accounts")
        return self


class CompanyResponse(BaseModel):
    """Schema for company API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Company unique identifier")
    company_name: str | None = None
    full_name: str | None = None
    display_name: str = Field(description="Name shown to users")
    domain: str
    is_company: bool
    custom_plan_id: UUID | None = None
    created_at: datetime


class CompanyRegistrationResult(BaseModel):
    company_id: UUID
    user_id: UUID
    email: str
    confirmation_required: bool = True


class PlanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_id: UUID
    name: str
    user_limit: int
    is_active: bool


class PlanUpdateRequest(BaseModel):
    user_limit: int | None = Field(default=None, ge=1, description="New active user cap")
    is_active: bool | None = None
    name: str | None = Field(default=None, min_length=1, max_length=100)


class UserLimitStatus(BaseModel):
    """Snapshot of a company's plan usage."""

    plan_active: bool
    user_limit: int
    active_users: int
    pending_invitations: int

    @property
    def available_slots(self) -> int:
        return max(0, self.user_limit - self.active_users)

    @property
    def remaining_invitations(self) -> int:
        """Slots not already reserved by pending invitations."""
        return max(0, self.available_slots - self.pending_invitations)


class CompanyStats(BaseModel):
    company_id: UUID
    display_name: str
    plan_active: bool
    user_limit: int
    total_users: int
    active_users: int
    owners: int
    pending_invitations: int
    available_slots: int
