"""Role API routes."""

from uuid import UUID

from fastapi import APIRouter

from src.api.deps import CurrentUser
from src.api.envelope import enveloped
from src.schemas.common import ApiResponse
from src.schemas.permission import RoleCreate, RoleResponse
from src.services.role_service import RoleService

router = APIRouter(prefix="/Role", tags=["roles"])


@router.get("", response_model=ApiResponse[list[RoleResponse]], summary="List roles")
async def list_roles(user: CurrentUser) -> ApiResponse[list[RoleResponse]]:
    service = RoleService()
    return await enveloped(service.list_roles(), "Roles retrieved successfully")


async def _create_role(service: RoleService, user: CurrentUser, data: RoleCreate) -> dict:
    await service.ensure_developer(user.user_id)
    return await service.create_role(data)


@router.post(
    "",
    response_model=ApiResponse[RoleResponse],
    summary="Create role",
    description="Creates a role. Its category is derived from the name once, at creation. Developers only.",
)
async def create_role(data: RoleCreate, user: CurrentUser) -> ApiResponse[RoleResponse]:
    service = RoleService()
    return await enveloped(_create_role(service, user, data), "Role created successfully")


@router.get("/{role_id}", response_model=ApiResponse[RoleResponse], summary="Get role")
async def get_role(role_id: UUID, user: CurrentUser) -> ApiResponse[RoleResponse]:
    service = RoleService()
    return await enveloped(service.get_role(role_id), "Role retrieved successfully")
