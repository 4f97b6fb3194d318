"""Session Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.core.dates import parse_datetime
from src.schemas.common import HIDDEN_TOKEN


class SessionResponse(BaseModel):
    """Session projection with token values masked."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Session unique identifier")
    tax_user_id: UUID = Field(description="Owner of the session")
    user_email: str | None = Field(default=None, description="Email of the session owner")
    token_request: str = Field(default=HIDDEN_TOKEN, description="Always masked")
    token_refresh: str = Field(default=HIDDEN_TOKEN, description="Always masked")
    expire_token_request: datetime
    expire_token_refresh: datetime
    ip_address: str | None = None
    device: str | None = None
    is_revoke: bool
    is_active: bool = Field(description="Not revoked and access token not expired")
    created_at: datetime

    @classmethod
    def from_row(cls, row: dict[str, Any], now: datetime, user_email: str | None = None) -> "SessionResponse":
        """Build a masked projection from a sessions row.

        Raw tokens never leave the service: both token fields are replaced
        regardless of what the row contains.
        """
        expire_request = parse_datetime(row["expire_token_request"])
        return cls(
            id=row["id"],
            tax_user_id=row["tax_user_id"],
            user_email=user_email,
            token_request=HIDDEN_TOKEN,
            token_refresh=HIDDEN_TOKEN,
            expire_token_request=expire_request,
            expire_token_refresh=parse_datetime(row["expire_token_refresh"]),
            ip_address=row.get("ip_address"),
            device=row.get("device"),
            is_revoke=bool(row.get("is_revoke")),
            is_active=not row.get("is_revoke") and expire_request > now,
            created_at=parse_datetime(row["created_at"]),
        )


class SessionStats(BaseModel):
    total_sessions: int = 0
    active_sessions: int = 0
    revoked_sessions: int = 0
    expired_sessions: int = 0
    users_with_active_sessions: int = 0


class BulkRevokeRequest(BaseModel):
    session_ids: list[UUID] = Field(..., min_length=1, description="Sessions to revoke")


class RevokeResult(BaseModel):
    revoked_count: int
    revoked_ids: list[UUID] = Field(default_factory=list)
    denied_ids: list[UUID] = Field(default_factory=list, description="Not visible to the caller")
