"""Permission catalogue routes."""

from fastapi import APIRouter

from src.api.deps import CurrentUser
from src.api.envelope import enveloped
from src.schemas.common import ApiResponse
from src.schemas.permission import PermissionCreate, PermissionResponse
from src.services.permission_service import PermissionService
from src.services.role_service import RoleService

router = APIRouter(prefix="/Permission", tags=["permissions"])


@router.get("", response_model=ApiResponse[list[PermissionResponse]], summary="List permissions")
async def list_permissions(user: CurrentUser) -> ApiResponse[list[PermissionResponse]]:
    service = PermissionService()
    return await enveloped(service.list_permissions(), "Permissions retrieved successfully")


async def _create_permission(user: CurrentUser, data: PermissionCreate) -> dict:
    service = PermissionService()
    await RoleService(service.client).ensure_developer(user.user_id)
    return await service.create_permission(data)


@router.post(
    "",
    response_model=ApiResponse[PermissionResponse],
    summary="Create permission",
    description="Adds a permission code to the catalogue. Developers only.",
)
async def create_permission(data: PermissionCreate, user: CurrentUser) -> ApiResponse[PermissionResponse]:
    return await enveloped(_create_permission(user, data), "Permission created successfully")
