"""Unit tests for JWT decoding and authentication utilities."""

import os
import time
import uuid

import pytest
from jose import jwt

from src.api.middleware.auth import AuthError, AuthErrorCode, decode_jwt
from src.services.token_service import TokenPurpose

USER_ID = "550e8400-e29b-41d4-a716-446655440000"
SESSION_ID = "6f1c1c64-4a5e-4d53-9a1b-0b7c2f1f0c11"
COMPANY_ID = "9b2d7a1e-6c44-4b7f-8c55-2f6a9e3d1a77"


def create_test_token(
    purpose: str = "access",
    exp_offset: int = 3600,
    secret: str | None = None,
    algorithm: str = "HS256",
    **overrides: object,
) -> str:
    """Create a test JWT token.

    Args:
        purpose: Value of the purpose claim.
        exp_offset: Seconds from now for expiration (negative for expired).
        secret: JWT secret for signing, defaults to the configured one.
        algorithm: Signing algorithm.
        **overrides: Claims to replace or drop (``None`` drops the claim).

    Returns:
        str: Encoded JWT token.
    """
    now = int(time.time())
    payload = {
        "sub": USER_ID,
        "sid": SESSION_ID,
        "company_id": COMPANY_ID,
        "email": "test@example.com",
        "is_owner": True,
        "role": "Administrator",
        "purpose": purpose,
        "exp": now + exp_offset,
        "iat": now,
    }
    for key, value in overrides.items():
        if value is None:
            payload.pop(key, None)
        else:
            payload[key] = value
    return jwt.encode(payload, secret or os.environ["JWT_SECRET_KEY"], algorithm=algorithm)


class TestDecodeJWT:
    """Tests for decode_jwt function."""

    def test_decode_jwt_with_valid_token(self) -> None:
        """Test decode_jwt successfully decodes a valid access token."""
        payload = decode_jwt(create_test_token())

        assert payload.sub == USER_ID
        assert payload.sid == SESSION_ID
        assert payload.company_id == COMPANY_ID
        assert payload.is_owner is True
        assert payload.role == "Administrator"

    def test_decode_jwt_with_expired_token(self) -> None:
        """Test decode_jwt raises AuthError for expired token."""
        token = create_test_token(exp_offset=-3600)

        with pytest.raises(AuthError) as exc_info:
            decode_jwt(token)

        assert exc_info.value.code == AuthErrorCode.TOKEN_EXPIRED
        assert "expired" in exc_info.value.message.lower()

    def test_decode_jwt_with_invalid_signature(self) -> None:
        """Test decode_jwt raises AuthError for invalid signature."""
        token = create_test_token(secret="another-secret-that-is-long-enough!!")

        with pytest.raises(AuthError) as exc_info:
            decode_jwt(token)

        assert exc_info.value.code == AuthErrorCode.INVALID_SIGNATURE

    def test_decode_jwt_with_malformed_token(self) -> None:
        """Test decode_jwt raises AuthError for garbage input."""
        with pytest.raises(AuthError) as exc_info:
            decode_jwt("not-a-jwt")

        assert exc_info.value.code == AuthErrorCode.INVALID_TOKEN

    def test_refresh_token_is_not_an_access_token(self) -> None:
        """Test a token is only accepted for its own purpose."""
        token = create_test_token(purpose="refresh")

        with pytest.raises(AuthError) as exc_info:
            decode_jwt(token)

        assert exc_info.value.code == AuthErrorCode.INVALID_TOKEN
        assert decode_jwt(token, TokenPurpose.REFRESH).purpose == "refresh"

    def test_decode_jwt_requires_session_claim(self) -> None:
        """Test a token without sid is rejected."""
        with pytest.raises(AuthError) as exc_info:
            decode_jwt(create_test_token(sid=None))

        assert exc_info.value.code == AuthErrorCode.INVALID_TOKEN

    def test_to_user_context(self) -> None:
        """Test the payload converts to a UserContext."""
        user = decode_jwt(create_test_token()).to_user_context()

        assert user.user_id == uuid.UUID(USER_ID)
        assert user.session_id == uuid.UUID(SESSION_ID)
        assert user.company_id == uuid.UUID(COMPANY_ID)
        assert user.email == "test@example.com"
