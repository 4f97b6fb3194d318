"""Tax user routes: confirmation, password reset and status management."""

from uuid import UUID

from fastapi import APIRouter, Request

from src.api.deps import AuthRateLimit, CurrentUser, get_origin
from src.api.envelope import enveloped
from src.schemas.common import ApiResponse
from src.schemas.user import (
    ConfirmAccountRequest,
    CreateDeveloperUserRequest,
    PasswordResetConfirm,
    PasswordResetRequest,
    TaxUserResponse,
    UserStatusResult,
)
from src.services.user_service import UserService

router = APIRouter(prefix="/TaxUser", tags=["users"])


@router.post(
    "/confirm",
    response_model=ApiResponse[TaxUserResponse],
    summary="Confirm account",
)
async def confirm_account(data: ConfirmAccountRequest, _: AuthRateLimit) -> ApiResponse[TaxUserResponse]:
    service = UserService()
    return await enveloped(service.confirm_account(data.email, data.token), "Account confirmed successfully")


@router.post(
    "/password-reset/request",
    response_model=ApiResponse[None],
    summary="Request password reset",
    description="Emails a reset link when the account exists. The response never reveals whether it does.",
)
async def request_password_reset(
    data: PasswordResetRequest,
    request: Request,
    _: AuthRateLimit,
) -> ApiResponse[None]:
    service = UserService()
    return await enveloped(
        service.request_password_reset(data.email, origin=get_origin(request)),
        "If the account exists, a reset link has been sent",
    )


@router.post(
    "/password-reset",
    response_model=ApiResponse[int],
    summary="Reset password",
    description="Sets a new password and revokes every session. Data is the number of revoked sessions.",
)
async def reset_password(data: PasswordResetConfirm, _: AuthRateLimit) -> ApiResponse[int]:
    service = UserService()
    return await enveloped(service.reset_password(data.token, data.new_password), "Password reset successfully")


@router.post(
    "/developer",
    response_model=ApiResponse[TaxUserResponse],
    summary="Create user as developer",
)
async def create_user_by_developer(
    data: CreateDeveloperUserRequest,
    user: CurrentUser,
) -> ApiResponse[TaxUserResponse]:
    service = UserService()
    return await enveloped(service.create_user_by_developer(user, data), "User created successfully")


@router.get(
    "/company",
    response_model=ApiResponse[list[TaxUserResponse]],
    summary="List company users",
)
async def list_company_users(user: CurrentUser) -> ApiResponse[list[TaxUserResponse]]:
    service = UserService()
    return await enveloped(service.list_company_users(user), "Users retrieved successfully")


@router.post(
    "/{user_id}/enable",
    response_model=ApiResponse[UserStatusResult],
    summary="Enable user",
)
async def enable_user(user_id: UUID, user: CurrentUser) -> ApiResponse[UserStatusResult]:
    service = UserService()
    return await enveloped(service.enable_user(user, user_id), "User enabled successfully")


@router.post(
    "/{user_id}/disable",
    response_model=ApiResponse[UserStatusResult],
    summary="Disable user",
    description="Soft-disables a user and revokes their sessions. The last active Owner cannot be disabled.",
)
async def disable_user(user_id: UUID, user: CurrentUser) -> ApiResponse[UserStatusResult]:
    service = UserService()
    return await enveloped(service.disable_user(user, user_id), "User disabled successfully")
