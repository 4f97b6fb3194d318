"""FastAPI dependency injection functions."""

import logging
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from src.api.middleware.auth import AuthError, AuthErrorCode, decode_jwt
from src.api.middleware.error_handler import RateLimitError
from src.core.config import get_settings
from src.core.rate_limiter import get_rate_limiter
from src.schemas.auth import UserContext
from src.services.session_service import SessionService

logger = logging.getLogger(__name__)


async def get_current_user(
    authorization: Annotated[str, Header(description="Bearer token")] = "",
) -> UserContext:
    """Extract and validate the current user from the Authorization header.

    The token must be a valid access token and the session it is bound to
    must not be revoked.

    Args:
        authorization: The Authorization header value (Bearer token).

    Returns:
        UserContext: The authenticated user's context.

    Raises:
        HTTPException: 401 if token is missing, invalid, expired or revoked.
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # Extract the token from "Bearer <token>" format
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format. Expected: Bearer <token>",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = parts[1]

    try:
        user = decode_jwt(token).to_user_context()

    except AuthError as e:
        if e.code == AuthErrorCode.TOKEN_EXPIRED:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired",
                headers={"WWW-Authenticate": "Bearer"},
            ) from e

        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    if not await SessionService().is_session_active(user.session_id, user.user_id):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session has been revoked",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


# Type alias for cleaner dependency injection
CurrentUser = Annotated[UserContext, Depends(get_current_user)]


def get_client_ip(request: Request) -> str | None:
    """Client address, honouring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_origin(request: Request) -> str:
    """Frontend origin used to build links sent by email."""
    return request.headers.get("origin") or get_settings().frontend_url


# Rate limiting dependency


async def check_auth_rate_limit(request: Request) -> None:
    """Limit unauthenticated auth endpoints per client IP.

    Args:
        request: FastAPI request object.

    Raises:
        RateLimitError: If the client has exceeded the rate limit.
    """
    settings = get_settings()
    limiter = get_rate_limiter()
    key = f"auth:{get_client_ip(request) or 'unknown'}"

    decision = await limiter.hit(
        key,
        max_attempts=settings.rate_limit_auth_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )

    if not decision.allowed:
        logger.warning("Auth rate limit exceeded for %s", key)
        raise RateLimitError(
            message="Too many authentication attempts. Please try again later.",
            retry_after=decision.retry_after,
            limit=decision.limit,
        )


AuthRateLimit = Annotated[None, Depends(check_auth_rate_limit)]
