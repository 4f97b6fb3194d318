"""Role and permission model type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import TypedDict
from uuid import UUID


class RoleCategory(str, Enum):
    """Closed role category resolved once when a role is created."""

    OWNER = "owner"
    ADMINISTRATOR = "administrator"
    MEMBER = "member"
    DEVELOPER = "developer"
    CUSTOMER = "customer"

    @classmethod
    def from_role_name(cls, name: str) -> "RoleCategory":
        """Derive the category of a new role from its display name."""
        normalized = name.strip().lower()
        for category in (cls.DEVELOPER, cls.ADMINISTRATOR, cls.OWNER, cls.CUSTOMER):
            if category.value in normalized:
                return category
        return cls.MEMBER

    @property
    def is_privileged(self) -> bool:
        """Privileged roles cannot be granted through an invitation."""
        return self in PRIVILEGED_CATEGORIES


PRIVILEGED_CATEGORIES = frozenset(
    {RoleCategory.OWNER, RoleCategory.ADMINISTRATOR, RoleCategory.DEVELOPER}
)

DEFAULT_MEMBER_ROLE_NAME = "User"


class Role(TypedDict):
    id: UUID
    name: str
    description: str | None
    category: RoleCategory
    created_at: datetime


class Permission(TypedDict):
    id: UUID
    code: str
    name: str
    description: str | None
    is_granted: bool


class RolePermission(TypedDict):
    id: UUID
    role_id: UUID
    permission_id: UUID


class CompanyPermission(TypedDict):
    """Permission grant (or denial) attached to a single user.

    Unique by (user, permission code).
    """

    id: UUID
    tax_user_id: UUID
    permission_id: UUID
    is_granted: bool
    description: str | None
    created_at: datetime
    updated_at: datetime | None
