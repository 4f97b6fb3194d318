"""Session model type definitions for database operations."""

from datetime import datetime
from typing import TypedDict
from uuid import UUID


class Session(TypedDict):
    """Session table row representation.

    Created at login and mutated only by revocation (``is_revoke``).
    """

    id: UUID
    tax_user_id: UUID
    token_request: str
    expire_token_request: datetime
    token_refresh: str
    expire_token_refresh: datetime
    ip_address: str | None
    device: str | None
    is_revoke: bool
    created_at: datetime
    updated_at: datetime | None


class UserCompanySession(TypedDict):
    """Session of an external customer identity."""

    id: UUID
    user_company_id: UUID
    token_request: str
    expire_token_request: datetime
    is_revoke: bool
    created_at: datetime
