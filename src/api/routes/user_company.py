"""Invitation onboarding routes: invite, validate and register."""

from fastapi import APIRouter, Request

from src.api.deps import AuthRateLimit, CurrentUser, get_client_ip, get_origin
from src.api.envelope import enveloped
from src.schemas.common import ApiResponse
from src.schemas.invitation import (
    InvitationSent,
    InvitationValidation,
    RegisterByInvitationRequest,
    RegistrationResult,
    SendInvitationRequest,
)
from src.services.invitation_service import InvitationService

router = APIRouter(prefix="/UserCompany", tags=["user-company"])


@router.post(
    "/invite",
    response_model=ApiResponse[InvitationSent],
    summary="Invite a user",
    description="Sends an invitation to join the caller's company.",
)
async def invite_user(
    data: SendInvitationRequest,
    request: Request,
    user: CurrentUser,
) -> ApiResponse[InvitationSent]:
    """Invite an email address into the authenticated user's company.

    Args:
        data: Email, roles and optional personal message.
        request: Incoming request (origin, client address, user agent).
        user: The authenticated user context.

    Returns:
        ApiResponse[InvitationSent]: The invitation id, link and expiry.
    """
    service = InvitationService()
    return await enveloped(
        service.send_invitation(
            user,
            data,
            origin=get_origin(request),
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        ),
        "Invitation sent successfully",
    )


@router.post(
    "/register-by-invitation",
    response_model=ApiResponse[RegistrationResult],
    summary="Register by invitation",
    description="Creates an active account from an invitation token.",
)
async def register_by_invitation(
    data: RegisterByInvitationRequest,
    _: AuthRateLimit,
) -> ApiResponse[RegistrationResult]:
    service = InvitationService()
    return await enveloped(service.register_by_invitation(data), "User registered successfully")


@router.get(
    "/validate-invitation/{token}",
    response_model=ApiResponse[InvitationValidation],
    summary="Validate invitation",
    description="Checks an invitation token before showing the registration form.",
)
async def validate_invitation(token: str, _: AuthRateLimit) -> ApiResponse[InvitationValidation]:
    """Validate an invitation token.

    The envelope's ``success`` mirrors ``is_valid``; the failure reason is
    returned as the message.
    """
    service = InvitationService()
    validation = await service.validate_invitation(token)
    if not validation.is_valid:
        return ApiResponse.fail(validation.error_message or "Invalid invitation", validation)
    return ApiResponse.ok(validation, "Invitation is valid")
