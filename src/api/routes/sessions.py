"""Session API routes: login, token refresh, logout and revocation."""

from uuid import UUID

from fastapi import APIRouter, Query, Request

from src.api.deps import AuthRateLimit, CurrentUser, get_client_ip
from src.api.envelope import enveloped
from src.schemas.auth import LoginRequest, LoginResponse, LogoutResult, RefreshRequest, RefreshResponse
from src.schemas.common import ApiResponse
from src.schemas.session import BulkRevokeRequest, RevokeResult, SessionResponse, SessionStats
from src.services.session_service import SessionService

router = APIRouter(prefix="/Session", tags=["sessions"])


@router.post(
    "/Login",
    response_model=ApiResponse[LoginResponse],
    summary="Log in",
    description="Verifies credentials and opens a session bound to a new token pair.",
)
async def login(data: LoginRequest, request: Request, _: AuthRateLimit) -> ApiResponse[LoginResponse]:
    """Authenticate a tax user.

    Args:
        data: Email, password and optional device.
        request: Incoming request (client address, user agent).

    Returns:
        ApiResponse[LoginResponse]: Tokens and user summary.
    """
    service = SessionService()
    return await enveloped(
        service.login(
            data,
            ip_address=get_client_ip(request),
            device=data.device or request.headers.get("user-agent"),
        ),
        "Login successful",
    )


@router.post(
    "/Refresh",
    response_model=ApiResponse[RefreshResponse],
    summary="Refresh access token",
)
async def refresh(data: RefreshRequest, _: AuthRateLimit) -> ApiResponse[RefreshResponse]:
    service = SessionService()
    return await enveloped(service.refresh(data.refresh_token), "Token refreshed successfully")


@router.post(
    "/Logout",
    response_model=ApiResponse[LogoutResult],
    summary="Log out",
    description="Revokes the session of the presented access token.",
)
async def logout(user: CurrentUser) -> ApiResponse[LogoutResult]:
    service = SessionService()
    return await enveloped(service.logout(user), "Logout successful")


@router.post(
    "/LogoutAll",
    response_model=ApiResponse[LogoutResult],
    summary="Log out everywhere",
    description="Revokes every session of the caller.",
)
async def logout_all(user: CurrentUser) -> ApiResponse[LogoutResult]:
    service = SessionService()
    return await enveloped(service.logout_all(user), "Logged out from all sessions")


@router.get(
    "/me",
    response_model=ApiResponse[list[SessionResponse]],
    summary="My sessions",
)
async def my_sessions(
    user: CurrentUser,
    active_only: bool = Query(default=False, description="Only non-revoked, unexpired sessions"),
) -> ApiResponse[list[SessionResponse]]:
    service = SessionService()
    return await enveloped(service.get_user_sessions(user, active_only), "Sessions retrieved successfully")


@router.get(
    "/company",
    response_model=ApiResponse[list[SessionResponse]],
    summary="Company sessions",
    description="Owners see every session of the company; other users only their own.",
)
async def company_sessions(
    user: CurrentUser,
    active_only: bool = Query(default=True, description="Only non-revoked, unexpired sessions"),
) -> ApiResponse[list[SessionResponse]]:
    service = SessionService()
    return await enveloped(service.get_company_sessions(user, active_only), "Sessions retrieved successfully")


@router.get(
    "/company/stats",
    response_model=ApiResponse[SessionStats],
    summary="Company session statistics",
)
async def company_session_stats(user: CurrentUser) -> ApiResponse[SessionStats]:
    service = SessionService()
    return await enveloped(service.get_company_session_stats(user), "Session statistics retrieved successfully")


@router.post(
    "/revoke-bulk",
    response_model=ApiResponse[RevokeResult],
    summary="Revoke sessions",
)
async def revoke_bulk(data: BulkRevokeRequest, user: CurrentUser) -> ApiResponse[RevokeResult]:
    service = SessionService()
    return await enveloped(service.revoke_sessions(user, data.session_ids), "Sessions revoked successfully")


@router.post(
    "/user/{user_id}/revoke",
    response_model=ApiResponse[RevokeResult],
    summary="Revoke a user's sessions",
)
async def revoke_user_sessions(user_id: UUID, user: CurrentUser) -> ApiResponse[RevokeResult]:
    service = SessionService()
    return await enveloped(service.revoke_user_sessions(user, user_id), "User sessions revoked successfully")


@router.post(
    "/{session_id}/revoke",
    response_model=ApiResponse[RevokeResult],
    summary="Revoke session",
)
async def revoke_session(session_id: UUID, user: CurrentUser) -> ApiResponse[RevokeResult]:
    service = SessionService()
    return await enveloped(service.revoke_session(user, session_id), "Session revoked successfully")
