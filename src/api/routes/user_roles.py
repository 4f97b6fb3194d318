"""Role assignment routes for users of the caller's company."""

from uuid import UUID

from fastapi import APIRouter

from src.api.deps import CurrentUser
from src.api.envelope import enveloped
from src.schemas.common import ApiResponse
from src.schemas.permission import RoleResponse, UserRolesResponse, UserRolesUpdate
from src.services.role_service import RoleService

router = APIRouter(prefix="/UserRole", tags=["user-roles"])


@router.get(
    "/user/{user_id}",
    response_model=ApiResponse[list[RoleResponse]],
    summary="List user roles",
    description="Owners can read any user of their company; others only themselves.",
)
async def list_user_roles(user_id: UUID, user: CurrentUser) -> ApiResponse[list[RoleResponse]]:
    service = RoleService()
    return await enveloped(service.list_user_roles(user, user_id), "Roles retrieved successfully")


@router.put(
    "/user/{user_id}",
    response_model=ApiResponse[UserRolesResponse],
    summary="Replace user roles",
    description=(
        "Replaces the user's role set. Owners only. Privileged roles can only be newly granted by a "
        "developer, and a company owner must keep an Administrator role."
    ),
)
async def update_user_roles(
    user_id: UUID,
    data: UserRolesUpdate,
    user: CurrentUser,
) -> ApiResponse[UserRolesResponse]:
    service = RoleService()
    return await enveloped(
        service.update_user_roles(user, user_id, data.role_ids),
        "User roles updated successfully",
    )


@router.delete(
    "/user/{user_id}/role/{role_id}",
    response_model=ApiResponse[None],
    summary="Remove role from user",
)
async def remove_user_role(user_id: UUID, role_id: UUID, user: CurrentUser) -> ApiResponse[None]:
    service = RoleService()
    return await enveloped(service.remove_user_role(user, user_id, role_id), "Role removed successfully")
