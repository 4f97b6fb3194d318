"""Role and permission Pydantic schemas for API request/response models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.models.permission import RoleCategory


class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=255)
    permission_ids: list[UUID] = Field(default_factory=list, description="Permissions granted by the role")


class RoleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None = None
    category: RoleCategory
    permission_codes: list[str] = Field(default_factory=list)


class PermissionCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=100, pattern=r"^[A-Za-z0-9_.:-]+$")
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=255)
    is_granted: bool = True


class PermissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    name: str
    description: str | None = None
    is_granted: bool


class CompanyPermissionCreate(BaseModel):
    tax_user_id: UUID = Field(..., description="User receiving the grant")
    permission_id: UUID
    is_granted: bool = Field(default=True, description="False records an explicit denial")
    description: str | None = Field(default=None, max_length=255)


class CompanyPermissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tax_user_id: UUID
    permission_id: UUID
    code: str | None = None
    is_granted: bool
    description: str | None = None
    created_at: datetime


class EffectivePermissions(BaseModel):
    """Role grants merged with individual grants; individual denials win."""

    tax_user_id: UUID
    permissions: list[str] = Field(default_factory=list)
    denied: list[str] = Field(default_factory=list)


class CompanyPermissionUpdate(BaseModel):
    is_granted: bool = Field(..., description="False turns the grant into an explicit denial")
    description: str | None = Field(default=None, max_length=255)


class UserRolesUpdate(BaseModel):
    role_ids: list[UUID] = Field(..., description="Complete set of roles the user should hold")


class UserRolesResponse(BaseModel):
    tax_user_id: UUID
    roles: list[RoleResponse] = Field(default_factory=list)
    added_role_ids: list[UUID] = Field(default_factory=list)
    removed_role_ids: list[UUID] = Field(default_factory=list)
