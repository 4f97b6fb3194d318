"""Unit tests for RoleService and role categories."""

from uuid import UUID, uuid4

import pytest

from src.api.middleware.error_handler import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from src.models.permission import RoleCategory
from src.schemas.permission import RoleCreate
from src.services.role_service import LAST_ADMINISTRATOR_ROLE_MESSAGE, OWNER_NEEDS_ADMINISTRATOR_MESSAGE, RoleService


@pytest.fixture
def service(world) -> RoleService:
    return RoleService(client=world.db)


class TestRoleCategory:
    @pytest.mark.parametrize(
        ("name", "category"),
        [
            ("Developer", RoleCategory.DEVELOPER),
            ("Senior Developer", RoleCategory.DEVELOPER),
            ("Administrator", RoleCategory.ADMINISTRATOR),
            ("Owner", RoleCategory.OWNER),
            ("Customer Portal", RoleCategory.CUSTOMER),
            ("Bookkeeper", RoleCategory.MEMBER),
        ],
    )
    def test_from_role_name(self, name: str, category: RoleCategory) -> None:
        assert RoleCategory.from_role_name(name) == category

    def test_privileged_categories(self) -> None:
        assert RoleCategory.OWNER.is_privileged
        assert RoleCategory.ADMINISTRATOR.is_privileged
        assert RoleCategory.DEVELOPER.is_privileged
        assert not RoleCategory.MEMBER.is_privileged
        assert not RoleCategory.CUSTOMER.is_privileged


class TestCreateRole:
    @pytest.mark.asyncio
    async def test_category_resolved_once_at_creation(self, service, world) -> None:
        role = await service.create_role(
            RoleCreate(name="Platform Developer", permission_ids=[world.permissions["reports.read"]["id"]])
        )

        stored = world.db.rows("roles", id=role["id"])[0]
        assert stored["category"] == "developer"
        assert role["permission_codes"] == ["reports.read"]
        assert len(world.db.rows("role_permissions", role_id=role["id"])) == 1

    @pytest.mark.asyncio
    async def test_duplicate_name(self, service) -> None:
        with pytest.raises(ConflictError):
            await service.create_role(RoleCreate(name="Accountant"))

    @pytest.mark.asyncio
    async def test_unknown_permission(self, service, world) -> None:
        with pytest.raises(ValidationError):
            await service.create_role(RoleCreate(name="Auditor", permission_ids=[uuid4()]))

        assert world.db.rows("roles", name="Auditor") == []

    @pytest.mark.asyncio
    async def test_list_roles_with_codes(self, service) -> None:
        roles = {role["name"]: role for role in await service.list_roles()}

        assert roles["Administrator"]["permission_codes"] == ["invoices.read", "invoices.write"]
        assert roles["Customer"]["permission_codes"] == []


class TestInvitationRoles:
    """Tests for resolve_invitation_roles."""

    @pytest.mark.asyncio
    async def test_empty_resolves_to_default_role(self, service) -> None:
        roles = await service.resolve_invitation_roles([])

        assert [r["name"] for r in roles] == ["User"]

    @pytest.mark.asyncio
    async def test_member_roles_are_accepted(self, service, world) -> None:
        accountant = UUID(world.roles["Accountant"]["id"])

        roles = await service.resolve_invitation_roles([accountant, accountant])

        assert [r["name"] for r in roles] == ["Accountant"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["Administrator", "Developer"])
    async def test_privileged_roles_are_rejected(self, service, world, name: str) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await service.resolve_invitation_roles([UUID(world.roles[name]["id"])])

        assert exc_info.value.message == f"Role '{name}' cannot be assigned via invitation"

    @pytest.mark.asyncio
    async def test_unknown_role(self, service) -> None:
        with pytest.raises(ValidationError):
            await service.resolve_invitation_roles([uuid4()])


class TestDeveloperCheck:
    @pytest.mark.asyncio
    async def test_ensure_developer(self, service, world) -> None:
        developer = world.add_user("dev@acmetax.com", role="Developer")

        await service.ensure_developer(UUID(developer["id"]))
        with pytest.raises(AuthorizationError):
            await service.ensure_developer(UUID(world.owner["id"]))


class TestGetRole:
    @pytest.mark.asyncio
    async def test_get_role_with_codes(self, service, world) -> None:
        role = await service.get_role(UUID(world.roles["Administrator"]["id"]))

        assert role["name"] == "Administrator"
        assert role["permission_codes"] == ["invoices.read", "invoices.write"]

    @pytest.mark.asyncio
    async def test_unknown_role(self, service) -> None:
        with pytest.raises(NotFoundError):
            await service.get_role(uuid4())


def role_ids(world, *names: str) -> list[UUID]:
    return [UUID(world.roles[name]["id"]) for name in names]


def held_role_names(world, user: dict) -> set[str]:
    by_id = {role["id"]: name for name, role in world.roles.items()}
    return {by_id[link["role_id"]] for link in world.db.rows("user_roles", tax_user_id=user["id"])}


class TestUserRoles:
    """Tests for list_user_roles, update_user_roles and remove_user_role."""

    @pytest.mark.asyncio
    async def test_owner_replaces_member_roles(self, service, world) -> None:
        result = await service.update_user_roles(
            world.owner_ctx, UUID(world.member["id"]), role_ids(world, "Accountant", "Customer")
        )

        assert held_role_names(world, world.member) == {"Accountant", "Customer"}
        assert [r["name"] for r in result["roles"]] == ["Accountant", "Customer"]
        assert result["removed_role_ids"] == [world.roles["User"]["id"]]
        assert len(result["added_role_ids"]) == 2

    @pytest.mark.asyncio
    async def test_member_cannot_change_roles(self, service, world) -> None:
        with pytest.raises(AuthorizationError):
            await service.update_user_roles(world.member_ctx, UUID(world.member["id"]), role_ids(world, "Accountant"))

        assert held_role_names(world, world.member) == {"User"}

    @pytest.mark.asyncio
    async def test_user_of_other_company_is_rejected(self, service, world) -> None:
        stranger = world.db.seed("tax_users", company_id=str(uuid4()), email="x@othercorp.com", is_owner=False)

        with pytest.raises(AuthorizationError):
            await service.update_user_roles(world.owner_ctx, UUID(stranger["id"]), role_ids(world, "User"))

    @pytest.mark.asyncio
    async def test_unknown_role_ids_are_rejected(self, service, world) -> None:
        missing = uuid4()

        with pytest.raises(ValidationError) as exc_info:
            await service.update_user_roles(world.owner_ctx, UUID(world.member["id"]), [missing])

        assert exc_info.value.message == f"Invalid role IDs: {missing}"
        assert held_role_names(world, world.member) == {"User"}

    @pytest.mark.asyncio
    async def test_privileged_roles_need_a_developer(self, service, world) -> None:
        with pytest.raises(AuthorizationError) as exc_info:
            await service.update_user_roles(
                world.owner_ctx, UUID(world.member["id"]), role_ids(world, "User", "Administrator")
            )

        assert exc_info.value.message == "Role 'Administrator' can only be granted by a developer"
        assert held_role_names(world, world.member) == {"User"}

    @pytest.mark.asyncio
    async def test_developer_owner_grants_privileged_role(self, service, world) -> None:
        dev_owner = world.add_user("devowner@acmetax.com", is_owner=True, role="Developer")

        await service.update_user_roles(
            world.context(dev_owner), UUID(world.member["id"]), role_ids(world, "Administrator")
        )

        assert held_role_names(world, world.member) == {"Administrator"}

    @pytest.mark.asyncio
    async def test_owner_must_keep_an_administrator_role(self, service, world) -> None:
        with pytest.raises(ConflictError) as exc_info:
            await service.update_user_roles(world.owner_ctx, UUID(world.owner["id"]), role_ids(world, "Accountant"))

        assert exc_info.value.message == OWNER_NEEDS_ADMINISTRATOR_MESSAGE
        assert held_role_names(world, world.owner) == {"Administrator"}

    @pytest.mark.asyncio
    async def test_owner_keeps_held_administrator_role_alongside_new_ones(self, service, world) -> None:
        await service.update_user_roles(
            world.owner_ctx, UUID(world.owner["id"]), role_ids(world, "Administrator", "Accountant")
        )

        assert held_role_names(world, world.owner) == {"Administrator", "Accountant"}

    @pytest.mark.asyncio
    async def test_list_user_roles(self, service, world) -> None:
        own = await service.list_user_roles(world.member_ctx, UUID(world.member["id"]))
        assert [r["name"] for r in own] == ["User"]

        with pytest.raises(AuthorizationError):
            await service.list_user_roles(world.member_ctx, UUID(world.owner["id"]))

        by_owner = await service.list_user_roles(world.owner_ctx, UUID(world.member["id"]))
        assert [r["name"] for r in by_owner] == ["User"]

    @pytest.mark.asyncio
    async def test_remove_role(self, service, world) -> None:
        await service.remove_user_role(world.owner_ctx, UUID(world.member["id"]), UUID(world.roles["User"]["id"]))

        assert held_role_names(world, world.member) == set()

    @pytest.mark.asyncio
    async def test_remove_unassigned_role(self, service, world) -> None:
        with pytest.raises(NotFoundError):
            await service.remove_user_role(
                world.owner_ctx, UUID(world.member["id"]), UUID(world.roles["Accountant"]["id"])
            )

    @pytest.mark.asyncio
    async def test_owner_last_administrator_role_stays(self, service, world) -> None:
        with pytest.raises(ConflictError) as exc_info:
            await service.remove_user_role(
                world.owner_ctx, UUID(world.owner["id"]), UUID(world.roles["Administrator"]["id"])
            )

        assert exc_info.value.message == LAST_ADMINISTRATOR_ROLE_MESSAGE
        assert held_role_names(world, world.owner) == {"Administrator"}
