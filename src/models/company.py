"""Company and plan model type definitions for database operations."""

from datetime import datetime
from typing import Any, TypedDict
from uuid import UUID


class Company(TypedDict):
    """Company table row representation.

    The tenant root. ``company_name`` is shown for businesses and
    ``full_name`` for individuals (``is_company`` false).
    """

    id: UUID
    company_name: str | None
    full_name: str | None
    domain: str
    is_company: bool
    custom_plan_id: UUID | None
    address: dict[str, Any] | None
    created_at: datetime
    updated_at: datetime | None


class CustomPlan(TypedDict):
    """Custom plan table row representation.

    ``user_limit`` caps the number of active users of the owning company.
    """

    id: UUID
    company_id: UUID
    name: str
    user_limit: int
    is_active: bool
    created_at: datetime
    updated_at: datetime | None


def company_display_name(company: dict[str, Any]) -> str:
    """Return the name shown to users for a company row."""
    if company.get("is_company", True):
        return company.get("company_name") or company.get("full_name") or ""
    return company.get("full_name") or company.get("company_name") or ""
