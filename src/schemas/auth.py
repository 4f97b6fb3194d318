"""Authentication schemas for JWT tokens, login and user context."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserContext(BaseModel):
    """Authenticated user context extracted from an access token.

    Populated by the auth dependency from the validated JWT and the
    session it is bound to.
    """

    model_config = ConfigDict(from_attributes=True)

    user_id: UUID = Field(description="Unique identifier for the user (from JWT sub claim)")
    session_id: UUID = Field(description="Session the token is bound to (sid claim)")
    company_id: UUID = Field(description="Company the user belongs to")
    email: str | None = Field(default=None, description="User's email address if available")
    is_owner: bool = Field(default=False, description="Whether the user is a company Owner")
    role: str | None = Field(default=None, description="Primary role name")


class TokenPayload(BaseModel):
    """Claims carried by access and refresh tokens issued by this service."""

    model_config = ConfigDict(from_attributes=True)

    sub: str = Field(description="Subject - the user's UUID")
    sid: str = Field(description="Session identifier")
    purpose: str = Field(description="Token purpose (access or refresh)")
    company_id: str = Field(description="Company UUID")
    email: str | None = Field(default=None, description="User's email address")
    is_owner: bool = Field(default=False, description="Owner flag")
    role: str | None = Field(default=None, description="Primary role name")
    exp: int = Field(description="Expiration timestamp (Unix epoch)")
    iat: int = Field(description="Issued at timestamp (Unix epoch)")

    @property
    def expiration_datetime(self) -> datetime:
        """Get expiration as datetime object."""
        return datetime.fromtimestamp(self.exp)

    def to_user_context(self) -> UserContext:
        """Convert token payload to UserContext.

        Returns:
            UserContext: User context derived from token claims.
        """
        return UserContext(
            user_id=UUID(self.sub),
            session_id=UUID(self.sid),
            company_id=UUID(self.company_id),
            email=self.email,
            is_owner=self.is_owner,
            role=self.role,
        )


class LoginRequest(BaseModel):
    """Credentials submitted to the login endpoint."""

    email: EmailStr = Field(..., description="Account email")
    password: str = Field(..., min_length=1, description="Account password")
    device: str | None = Field(default=None, max_length=255, description="Client device description")


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1, description="Refresh token issued at login")


class LoginUser(BaseModel):
    """User summary embedded in the login response."""

    id: UUID
    email: str
    name: str | None = None
    last_name: str | None = None
    company_id: UUID
    is_owner: bool
    roles: list[str] = Field(default_factory=list)


class LoginResponse(BaseModel):
    """Token pair bound to a freshly created session."""

    session_id: UUID = Field(description="Session the tokens are bound to")
    access_token: str = Field(description="Bearer access token")
    refresh_token: str = Field(description="Refresh token")
    token_type: str = Field(default="bearer")
    expires_at: datetime = Field(description="Access token expiry")
    refresh_expires_at: datetime = Field(description="Refresh token expiry")
    user: LoginUser


class RefreshResponse(BaseModel):
    session_id: UUID
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime


class LogoutResult(BaseModel):
    revoked_sessions: int = Field(description="Number of sessions revoked by the call")
