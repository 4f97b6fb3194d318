"""Role business logic service."""

import logging
from typing import Any
from uuid import UUID

from supabase import Client

from src.api.middleware.error_handler import AuthorizationError, ConflictError, NotFoundError, ValidationError
from src.core.supabase import get_supabase_client
from src.core.transaction import SupabaseTransaction
from src.models.permission import DEFAULT_MEMBER_ROLE_NAME, RoleCategory
from src.schemas.auth import UserContext
from src.schemas.permission import RoleCreate

logger = logging.getLogger(__name__)

OWNER_NEEDS_ADMINISTRATOR_MESSAGE = "Company owner must maintain at least one Administrator role"
LAST_ADMINISTRATOR_ROLE_MESSAGE = (
    "Cannot remove the last Administrator role from company owner. Assign another Administrator role first."
)

_ADMINISTRATIVE = {RoleCategory.ADMINISTRATOR.value, RoleCategory.DEVELOPER.value}


class RoleService:
    """Service for the role graph: roles, their permissions and assignments."""

    def __init__(self, client: Client | None = None) -> None:
        self.client = client or get_supabase_client()

    async def create_role(self, data: RoleCreate) -> dict[str, Any]:
        """Create a role, resolving its category from the name once.

        Args:
            data: Role name, description and granted permission ids.

        Returns:
            dict: The created role row with ``permission_codes``.

        Raises:
            ConflictError: If a role with that name exists.
            ValidationError: If a permission id does not exist.
        """
        existing = (
            self.client.table("roles")
            .select("id")
            .eq("name", data.name)
            .execute()
        )
        if existing.data:
            raise ConflictError(f"Role '{data.name}' already exists")

        permissions: list[dict[str, Any]] = []
        if data.permission_ids:
            permissions = (
                self.client.table("permissions")
                .select("id, code")
                .in_("id", [str(pid) for pid in data.permission_ids])
                .execute()
            ).data or []
            if len(permissions) != len(set(data.permission_ids)):
                raise ValidationError("Some specified permissions were not found")

        category = RoleCategory.from_role_name(data.name)

        async with SupabaseTransaction(self.client) as tx:
            role = tx.insert(
                "roles",
                {
                    "name": data.name,
                    "description": data.description,
                    "category": category.value,
                },
            )[0]
            if permissions:
                tx.insert(
                    "role_permissions",
                    [{"role_id": role["id"], "permission_id": p["id"]} for p in permissions],
                )

        logger.info("Role %s created with category %s", role["id"], category.value)
        return {**role, "permission_codes": [p["code"] for p in permissions]}

    async def list_roles(self) -> list[dict[str, Any]]:
        roles = (
            self.client.table("roles")
            .select("*")
            .order("name")
            .execute()
        ).data or []
        if not roles:
            return []

        links = (
            self.client.table("role_permissions")
            .select("role_id, permission_id")
            .in_("role_id", [r["id"] for r in roles])
            .execute()
        ).data or []
        codes = await self._permission_codes({link["permission_id"] for link in links})

        by_role: dict[str, list[str]] = {}
        for link in links:
            code = codes.get(str(link["permission_id"]))
            if code:
                by_role.setdefault(str(link["role_id"]), []).append(code)

        return [{**role, "permission_codes": sorted(by_role.get(str(role["id"]), []))} for role in roles]

    async def get_role(self, role_id: UUID) -> dict[str, Any]:
        """Get one role with its permission codes.

        Raises:
            NotFoundError: If the role does not exist.
        """
        response = (
            self.client.table("roles")
            .select("*")
            .eq("id", str(role_id))
            .maybe_single()
            .execute()
        )
        if not response or not response.data:
            raise NotFoundError("Role not found")

        links = (
            self.client.table("role_permissions")
            .select("permission_id")
            .eq("role_id", str(role_id))
            .execute()
        ).data or []
        codes = await self._permission_codes({link["permission_id"] for link in links})
        return {**response.data, "permission_codes": sorted(codes.values())}

    async def get_roles(self, role_ids: list[UUID]) -> list[dict[str, Any]]:
        if not role_ids:
            return []
        response = (
            self.client.table("roles")
            .select("*")
            .in_("id", [str(rid) for rid in role_ids])
            .execute()
        )
        return response.data or []

    async def get_default_member_role(self) -> dict[str, Any]:
        """Get the member-category role named ``User``.

        Raises:
            NotFoundError: If the default role has not been seeded.
        """
        response = (
            self.client.table("roles")
            .select("*")
            .eq("name", DEFAULT_MEMBER_ROLE_NAME)
            .eq("category", RoleCategory.MEMBER.value)
            .maybe_single()
            .execute()
        )
        if not response or not response.data:
            raise NotFoundError("Default user role not found")
        return response.data

    async def get_role_by_category(self, category: RoleCategory) -> dict[str, Any] | None:
        response = (
            self.client.table("roles")
            .select("*")
            .eq("category", category.value)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    async def resolve_invitation_roles(self, role_ids: list[UUID]) -> list[dict[str, Any]]:
        """Validate roles requested for an invited member.

        Empty input resolves to the default member role.

        Raises:
            ValidationError: If a role is missing or privileged.
        """
        if not role_ids:
            return [await self.get_default_member_role()]

        unique_ids = list(dict.fromkeys(role_ids))
        roles = await self.get_roles(unique_ids)
        if len(roles) != len(unique_ids):
            raise ValidationError("Some specified roles were not found")

        for role in roles:
            if RoleCategory(role["category"]).is_privileged:
                raise ValidationError(f"Role '{role['name']}' cannot be assigned via invitation")
        return roles

    async def get_user_roles(self, user_id: UUID) -> list[dict[str, Any]]:
        """Get the role rows assigned to a user."""
        links = (
            self.client.table("user_roles")
            .select("role_id")
            .eq("tax_user_id", str(user_id))
            .execute()
        ).data or []
        if not links:
            return []
        return await self.get_roles([link["role_id"] for link in links])

    async def user_has_category(self, user_id: UUID, *categories: RoleCategory) -> bool:
        roles = await self.get_user_roles(user_id)
        wanted = {c.value for c in categories}
        return any(role["category"] in wanted for role in roles)

    async def ensure_developer(self, user_id: UUID) -> None:
        """Raise unless the user holds a developer-category role."""
        if not await self.user_has_category(user_id, RoleCategory.DEVELOPER):
            raise AuthorizationError("Developer role required")

    def assign_roles(self, tx: SupabaseTransaction, user_id: UUID, roles: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Insert user_roles rows inside an open transaction."""
        if not roles:
            return []
        return tx.insert(
            "user_roles",
            [{"tax_user_id": str(user_id), "role_id": str(role["id"])} for role in roles],
        )

    async def _permission_codes(self, permission_ids: set[Any]) -> dict[str, str]:
        if not permission_ids:
            return {}
        rows = (
            self.client.table("permissions")
            .select("id, code")
            .in_("id", [str(pid) for pid in permission_ids])
            .execute()
        ).data or []
        return {str(row["id"]): row["code"] for row in rows}

    # User role management

    async def list_user_roles(self, caller: UserContext, user_id: UUID) -> list[dict[str, Any]]:
        """Roles of a user of the caller's company (Owners, or the user themselves)."""
        await self._get_company_user(caller, user_id)
        if not caller.is_owner and str(user_id) != str(caller.user_id):
            raise AuthorizationError("Only company owners can view other users' roles")
        return await self.get_user_roles(user_id)

    async def update_user_roles(self, caller: UserContext, user_id: UUID, role_ids: list[UUID]) -> dict[str, Any]:
        """Replace the roles of a user of the caller's company.

        Only Owners may change roles. Privileged roles the user does not
        already hold can only be granted by a Developer, and an Owner must
        always keep an administrator-category role.

        Args:
            caller: Authenticated Owner.
            user_id: Target user.
            role_ids: The complete new role set.

        Returns:
            dict: ``tax_user_id``, the resulting ``roles`` and the added and
            removed role ids.

        Raises:
            AuthorizationError: If the caller is not an Owner of the user's company
                or grants a privileged role without being a Developer.
            NotFoundError: If the user does not exist.
            ValidationError: If a role id does not exist.
            ConflictError: If an Owner would lose every administrator role.
        """
        if not caller.is_owner:
            raise AuthorizationError("Only company owners can manage user roles")
        user = await self._get_company_user(caller, user_id)

        wanted_ids = [str(rid) for rid in dict.fromkeys(role_ids)]
        roles = await self.get_roles([UUID(rid) for rid in wanted_ids])
        found = {str(role["id"]) for role in roles}
        missing = [rid for rid in wanted_ids if rid not in found]
        if missing:
            raise ValidationError(f"Invalid role IDs: {', '.join(missing)}")

        if user["is_owner"] and not any(role["category"] in _ADMINISTRATIVE for role in roles):
            logger.warning("Owner %s must keep an Administrator role", user_id)
            raise ConflictError(OWNER_NEEDS_ADMINISTRATOR_MESSAGE)

        current_ids = {str(role["id"]) for role in await self.get_user_roles(user_id)}
        to_add = [role for role in roles if str(role["id"]) not in current_ids]
        to_remove = [rid for rid in current_ids if rid not in found]

        privileged = [role["name"] for role in to_add if RoleCategory(role["category"]).is_privileged]
        if privileged and not await self.user_has_category(caller.user_id, RoleCategory.DEVELOPER):
            raise AuthorizationError(f"Role '{privileged[0]}' can only be granted by a developer")

        async with SupabaseTransaction(self.client) as tx:
            if to_remove:
                tx.delete("user_roles", eq={"tax_user_id": str(user_id)}, in_={"role_id": to_remove})
            self.assign_roles(tx, user_id, to_add)

        logger.info(
            "User roles updated: user=%s removed=%d added=%d total=%d",
            user_id,
            len(to_remove),
            len(to_add),
            len(roles),
            extra={"company_id": str(caller.company_id), "is_owner": user["is_owner"]},
        )
        return {
            "tax_user_id": user_id,
            "roles": sorted(roles, key=lambda role: role["name"]),
            "added_role_ids": [role["id"] for role in to_add],
            "removed_role_ids": sorted(to_remove),
        }

    async def remove_user_role(self, caller: UserContext, user_id: UUID, role_id: UUID) -> None:
        """Remove one role from a user; an Owner's last administrator role stays."""
        if not caller.is_owner:
            raise AuthorizationError("Only company owners can manage user roles")
        user = await self._get_company_user(caller, user_id)

        held = await self.get_user_roles(user_id)
        role = next((r for r in held if str(r["id"]) == str(role_id)), None)
        if role is None:
            raise NotFoundError("Role assignment not found")

        if user["is_owner"] and role["category"] in _ADMINISTRATIVE:
            others = [r for r in held if str(r["id"]) != str(role_id) and r["category"] in _ADMINISTRATIVE]
            if not others:
                raise ConflictError(LAST_ADMINISTRATOR_ROLE_MESSAGE)

        self.client.table("user_roles").delete().eq("tax_user_id", str(user_id)).eq("role_id", str(role_id)).execute()
        logger.info("Role %s removed from user %s", role["name"], user_id)

    async def _get_company_user(self, caller: UserContext, user_id: UUID) -> dict[str, Any]:
        response = (
            self.client.table("tax_users")
            .select("id, company_id, is_owner")
            .eq("id", str(user_id))
            .maybe_single()
            .execute()
        )
        if not response or not response.data:
            raise NotFoundError("User not found")
        if str(response.data["company_id"]) != str(caller.company_id):
            raise AuthorizationError("User belongs to another company")
        return response.data
