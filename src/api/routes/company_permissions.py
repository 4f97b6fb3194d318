"""Per-user permission grant routes."""

from uuid import UUID

from fastapi import APIRouter

from src.api.deps import CurrentUser
from src.api.envelope import enveloped
from src.schemas.common import ApiResponse
from src.schemas.permission import (
    CompanyPermissionCreate,
    CompanyPermissionResponse,
    CompanyPermissionUpdate,
    EffectivePermissions,
)
from src.services.permission_service import PermissionService

router = APIRouter(prefix="/CompanyPermission", tags=["company-permissions"])


@router.post(
    "",
    response_model=ApiResponse[CompanyPermissionResponse],
    summary="Assign permission",
    description="Grants or explicitly denies a permission to a user of the caller's company. Owners only.",
)
async def assign_permission(
    data: CompanyPermissionCreate,
    user: CurrentUser,
) -> ApiResponse[CompanyPermissionResponse]:
    service = PermissionService()
    return await enveloped(service.assign_permission(user, data), "Permission assigned successfully")


@router.put(
    "/{company_permission_id}",
    response_model=ApiResponse[CompanyPermissionResponse],
    summary="Update permission",
    description="Toggles a grant between allowed and explicitly denied. Owners only.",
)
async def update_permission(
    company_permission_id: UUID,
    data: CompanyPermissionUpdate,
    user: CurrentUser,
) -> ApiResponse[CompanyPermissionResponse]:
    service = PermissionService()
    return await enveloped(
        service.update_permission(user, company_permission_id, data),
        "Permission updated successfully",
    )


@router.delete(
    "/{company_permission_id}",
    response_model=ApiResponse[None],
    summary="Remove permission",
)
async def remove_permission(company_permission_id: UUID, user: CurrentUser) -> ApiResponse[None]:
    service = PermissionService()
    return await enveloped(service.remove_permission(user, company_permission_id), "Permission removed successfully")


@router.get(
    "/user/{user_id}",
    response_model=ApiResponse[list[CompanyPermissionResponse]],
    summary="List user permissions",
)
async def list_user_permissions(user_id: UUID, user: CurrentUser) -> ApiResponse[list[CompanyPermissionResponse]]:
    service = PermissionService()
    return await enveloped(service.list_user_permissions(user, user_id), "Permissions retrieved successfully")


@router.get(
    "/user/{user_id}/effective",
    response_model=ApiResponse[EffectivePermissions],
    summary="Effective permissions",
    description="Role grants merged with individual grants; individual denials take precedence.",
)
async def effective_permissions(user_id: UUID, user: CurrentUser) -> ApiResponse[EffectivePermissions]:
    service = PermissionService()
    return await enveloped(service.get_effective_permissions(user, user_id), "Permissions retrieved successfully")
