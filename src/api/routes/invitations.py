"""Invitation management routes for the caller's company."""

from uuid import UUID

from fastapi import APIRouter, Query

from src.api.deps import CurrentUser
from src.api.envelope import enveloped
from src.models.invitation import InvitationStatus
from src.schemas.common import ApiResponse
from src.schemas.invitation import (
    BulkCancelInvitationsRequest,
    CancelInvitationRequest,
    CancelResult,
    CanSendMoreResponse,
    ExpireSweepResult,
    InvitationResponse,
    InvitationStats,
)
from src.services.invitation_service import InvitationService

router = APIRouter(prefix="/Invitation", tags=["invitations"])


@router.get(
    "",
    response_model=ApiResponse[list[InvitationResponse]],
    summary="List company invitations",
    description="Returns the invitations of the caller's company, newest first.",
)
async def list_invitations(
    user: CurrentUser,
    status: InvitationStatus | None = Query(default=None, description="Filter by status"),
) -> ApiResponse[list[InvitationResponse]]:
    service = InvitationService()
    return await enveloped(service.list_company_invitations(user, status), "Invitations retrieved successfully")


@router.get(
    "/stats",
    response_model=ApiResponse[InvitationStats],
    summary="Invitation statistics",
)
async def get_invitation_stats(user: CurrentUser) -> ApiResponse[InvitationStats]:
    service = InvitationService()
    return await enveloped(service.get_stats(user.company_id), "Invitation statistics retrieved successfully")


@router.get(
    "/can-send-more",
    response_model=ApiResponse[CanSendMoreResponse],
    summary="Check invitation capacity",
    description="Reports whether the company can send another invitation and why not.",
)
async def can_send_more(user: CurrentUser) -> ApiResponse[CanSendMoreResponse]:
    service = InvitationService()
    return await enveloped(service.can_send_more(user.company_id), "Invitation capacity retrieved successfully")


@router.post(
    "/cancel-bulk",
    response_model=ApiResponse[CancelResult],
    summary="Cancel invitations",
)
async def cancel_bulk(data: BulkCancelInvitationsRequest, user: CurrentUser) -> ApiResponse[CancelResult]:
    service = InvitationService()
    return await enveloped(
        service.cancel_invitations(user, data.invitation_ids, data.reason),
        "Invitations cancelled successfully",
    )


@router.post(
    "/mark-expired",
    response_model=ApiResponse[ExpireSweepResult],
    summary="Expire stale invitations",
    description="Marks the company's pending invitations past their expiry as expired.",
)
async def mark_expired(user: CurrentUser) -> ApiResponse[ExpireSweepResult]:
    service = InvitationService()
    return await enveloped(service.mark_company_expired(user), "Expired invitations processed")


@router.post(
    "/{invitation_id}/cancel",
    response_model=ApiResponse[CancelResult],
    summary="Cancel invitation",
)
async def cancel_invitation(
    invitation_id: UUID,
    user: CurrentUser,
    data: CancelInvitationRequest | None = None,
) -> ApiResponse[CancelResult]:
    service = InvitationService()
    return await enveloped(
        service.cancel_invitation(user, invitation_id, data.reason if data else None),
        "Invitation cancelled successfully",
    )


@router.get(
    "/{invitation_id}",
    response_model=ApiResponse[InvitationResponse],
    summary="Get invitation",
)
async def get_invitation(invitation_id: UUID, user: CurrentUser) -> ApiResponse[InvitationResponse]:
    service = InvitationService()
    return await enveloped(service.get_invitation(user, invitation_id), "Invitation retrieved successfully")
