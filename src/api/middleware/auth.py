"""JWT authentication utilities for session-bound bearer tokens."""

from enum import Enum
from typing import Any

from src.schemas.auth import TokenPayload
from src.services.token_service import TokenError, TokenFailureReason, TokenPurpose, TokenService


class AuthErrorCode(str, Enum):
    """Authentication error codes."""

    UNAUTHORIZED = "UNAUTHORIZED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    SESSION_REVOKED = "SESSION_REVOKED"


class AuthError(Exception):
    """Authentication error with specific error code.

    Raised when JWT validation fails for any reason.
    The error code indicates the specific failure reason.
    """

    def __init__(self, message: str, code: AuthErrorCode) -> None:
        """Initialize authentication error.

        Args:
            message: Human-readable error description.
            code: Specific error code for programmatic handling.
        """
        self.message = message
        self.code = code
        super().__init__(message)


def decode_jwt(token: str, purpose: TokenPurpose = TokenPurpose.ACCESS) -> TokenPayload:
    """Decode and validate an access or refresh token.

    Validates the token signature, expiration, purpose and structure.

    Args:
        token: The JWT token string to decode.
        purpose: Expected token purpose.

    Returns:
        TokenPayload: Validated token payload.

    Raises:
        AuthError: If token is invalid, expired, or has wrong signature.
    """
    try:
        payload: dict[str, Any] = TokenService().decode(token, purpose)
    except TokenError as e:
        if e.reason == TokenFailureReason.EXPIRED:
            raise AuthError("Token has expired", AuthErrorCode.TOKEN_EXPIRED) from e
        if e.reason == TokenFailureReason.INVALID_SIGNATURE:
            raise AuthError("Invalid token signature", AuthErrorCode.INVALID_SIGNATURE) from e
        raise AuthError("Invalid token", AuthErrorCode.INVALID_TOKEN) from e

    try:
        return TokenPayload(
            sub=payload["sub"],
            sid=payload["sid"],
            purpose=payload["purpose"],
            company_id=payload["company_id"],
            email=payload.get("email"),
            is_owner=bool(payload.get("is_owner", False)),
            role=payload.get("role"),
            exp=payload["exp"],
            iat=payload["iat"],
        )
    except (KeyError, ValueError) as e:
        raise AuthError("Token missing required claim", AuthErrorCode.INVALID_TOKEN) from e
