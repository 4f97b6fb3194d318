"""Tax user model type definitions for database operations."""

from datetime import datetime
from typing import TypedDict
from uuid import UUID


class TaxUser(TypedDict):
    """Tax user table row representation.

    Email is globally unique and stored lower-case. Users are disabled
    (``is_active`` false) rather than deleted.
    """

    id: UUID
    company_id: UUID
    email: str
    password_hash: str
    name: str | None
    last_name: str | None
    phone_number: str | None
    is_active: bool
    is_owner: bool
    confirmed: bool
    created_at: datetime
    updated_at: datetime | None


class UserCompany(TypedDict):
    """External customer identity of a company (separate login table)."""

    id: UUID
    company_id: UUID
    email: str
    is_active: bool
    created_at: datetime


class UserRole(TypedDict):
    id: UUID
    tax_user_id: UUID
    role_id: UUID
    created_at: datetime
