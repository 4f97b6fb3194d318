"""Permission catalogue, per-user grants and registration-time inheritance."""

import logging
from typing import Any
from uuid import UUID

from supabase import Client

from src.api.middleware.error_handler import AuthorizationError, ConflictError, NotFoundError
from src.core.dates import utcnow
from src.core.supabase import get_supabase_client
from src.core.transaction import SupabaseTransaction
from src.models.permission import RoleCategory
from src.schemas.auth import UserContext
from src.schemas.permission import CompanyPermissionCreate, CompanyPermissionUpdate, PermissionCreate

logger = logging.getLogger(__name__)

INHERITED_DESCRIPTION = "Inherited from Administrator role on registration - {code}"


class PermissionService:
    """Service for permissions and company permission grants."""

    def __init__(self, client: Client | None = None) -> None:
        self.client = client or get_supabase_client()

    # Catalogue

    async def create_permission(self, data: PermissionCreate) -> dict[str, Any]:
        existing = (
            self.client.table("permissions")
            .select("id")
            .eq("code", data.code)
            .execute()
        )
        if existing.data:
            raise ConflictError(f"Permission '{data.code}' already exists")

        response = self.client.table("permissions").insert(data.model_dump()).execute()
        logger.info("Permission %s created", data.code)
        return response.data[0]

    async def list_permissions(self) -> list[dict[str, Any]]:
        response = (
            self.client.table("permissions")
            .select("*")
            .order("code")
            .execute()
        )
        return response.data or []

    async def get_permission(self, permission_id: UUID) -> dict[str, Any]:
        response = (
            self.client.table("permissions")
            .select("*")
            .eq("id", str(permission_id))
            .maybe_single()
            .execute()
        )
        if not response or not response.data:
            raise NotFoundError("Permission not found")
        return response.data

    # Company permissions

    async def assign_permission(self, caller: UserContext, data: CompanyPermissionCreate) -> dict[str, Any]:
        """Grant (or explicitly deny) a permission to a user of the caller's company.

        Args:
            caller: Authenticated Owner.
            data: Target user, permission and grant flag.

        Returns:
            dict: The created company_permissions row with its code.

        Raises:
            AuthorizationError: If the caller is not an Owner of the user's company.
            NotFoundError: If the user or permission does not exist.
            ConflictError: If the user already has this permission code.
        """
        await self._ensure_manageable_user(caller, data.tax_user_id, owner_only=True)
        permission = await self.get_permission(data.permission_id)

        existing = (
            self.client.table("company_permissions")
            .select("id")
            .eq("tax_user_id", str(data.tax_user_id))
            .eq("permission_id", str(data.permission_id))
            .execute()
        )
        if existing.data:
            raise ConflictError(f"Permission '{permission['code']}' is already assigned to this user")

        response = (
            self.client.table("company_permissions")
            .insert({
                "tax_user_id": str(data.tax_user_id),
                "permission_id": str(data.permission_id),
                "is_granted": data.is_granted,
                "description": data.description,
            })
            .execute()
        )
        logger.info(
            "Permission %s assigned to user %s",
            permission["code"],
            data.tax_user_id,
            extra={"company_id": str(caller.company_id)},
        )
        return {**response.data[0], "code": permission["code"]}

    async def update_permission(
        self,
        caller: UserContext,
        company_permission_id: UUID,
        data: CompanyPermissionUpdate,
    ) -> dict[str, Any]:
        """Flip a grant to a denial (or back) and optionally replace its description."""
        grant = await self._get_grant(company_permission_id)
        await self._ensure_manageable_user(caller, UUID(str(grant["tax_user_id"])), owner_only=True)

        values: dict[str, Any] = {"is_granted": data.is_granted, "updated_at": utcnow().isoformat()}
        if data.description is not None:
            values["description"] = data.description
        updated = (
            self.client.table("company_permissions")
            .update(values)
            .eq("id", str(company_permission_id))
            .execute()
        ).data[0]

        codes = await self._codes_by_id({updated["permission_id"]})
        logger.info("Company permission %s set to granted=%s", company_permission_id, data.is_granted)
        return {**updated, "code": codes.get(str(updated["permission_id"]))}

    async def remove_permission(self, caller: UserContext, company_permission_id: UUID) -> None:
        grant = await self._get_grant(company_permission_id)
        await self._ensure_manageable_user(caller, UUID(str(grant["tax_user_id"])), owner_only=True)
        self.client.table("company_permissions").delete().eq("id", str(company_permission_id)).execute()
        logger.info("Company permission %s removed", company_permission_id)

    async def list_user_permissions(self, caller: UserContext, user_id: UUID) -> list[dict[str, Any]]:
        """List individual grants of a user (Owners, or the user themselves)."""
        await self._ensure_manageable_user(caller, user_id, owner_only=False)
        rows = (
            self.client.table("company_permissions")
            .select("*")
            .eq("tax_user_id", str(user_id))
            .execute()
        ).data or []
        codes = await self._codes_by_id({row["permission_id"] for row in rows})
        return [{**row, "code": codes.get(str(row["permission_id"]))} for row in rows]

    async def get_effective_permissions(self, caller: UserContext, user_id: UUID) -> dict[str, Any]:
        """Resolve role grants plus individual grants; individual denials win.

        Returns:
            dict: ``tax_user_id``, sorted ``permissions`` and ``denied`` codes.
        """
        await self._ensure_manageable_user(caller, user_id, owner_only=False)

        role_ids = [
            link["role_id"]
            for link in (
                self.client.table("user_roles")
                .select("role_id")
                .eq("tax_user_id", str(user_id))
                .execute()
            ).data or []
        ]
        granted = set((await self._role_permissions(role_ids)).keys())

        individual = await self.list_user_permissions(caller, user_id)
        denied = {row["code"] for row in individual if row.get("code") and not row["is_granted"]}
        granted |= {row["code"] for row in individual if row.get("code") and row["is_granted"]}

        return {
            "tax_user_id": user_id,
            "permissions": sorted(granted - denied),
            "denied": sorted(denied),
        }

    # Inheritance

    async def collect_administrator_permissions(self, company_id: UUID) -> list[dict[str, Any]]:
        """Granted permissions of Administrator roles held by the company's active Owners.

        Returns:
            list[dict]: Permission rows, one per code.
        """
        owners = (
            self.client.table("tax_users")
            .select("id")
            .eq("company_id", str(company_id))
            .eq("is_owner", True)
            .eq("is_active", True)
            .execute()
        ).data or []
        if not owners:
            return []

        owner_role_ids = {
            link["role_id"]
            for link in (
                self.client.table("user_roles")
                .select("role_id")
                .in_("tax_user_id", [o["id"] for o in owners])
                .execute()
            ).data or []
        }
        if not owner_role_ids:
            return []

        admin_roles = (
            self.client.table("roles")
            .select("id")
            .in_("id", [str(rid) for rid in owner_role_ids])
            .eq("category", RoleCategory.ADMINISTRATOR.value)
            .execute()
        ).data or []

        permissions = await self._role_permissions([r["id"] for r in admin_roles])
        return list(permissions.values())

    async def inherit_administrator_permissions(
        self,
        tx: SupabaseTransaction,
        company_id: UUID,
        user_id: UUID,
    ) -> int:
        """Copy the Owners' Administrator permissions to a newly registered user.

        Absence of inheritable permissions is not an error.

        Returns:
            int: Number of company_permissions rows created.
        """
        permissions = await self.collect_administrator_permissions(company_id)
        if not permissions:
            logger.warning(
                "No administrator permissions to inherit for company %s",
                company_id,
                extra={"user_id": str(user_id)},
            )
            return 0

        rows = tx.insert(
            "company_permissions",
            [
                {
                    "tax_user_id": str(user_id),
                    "permission_id": str(permission["id"]),
                    "is_granted": True,
                    "description": INHERITED_DESCRIPTION.format(code=permission["code"]),
                }
                for permission in permissions
            ],
        )
        logger.info("User %s inherited %d permissions", user_id, len(rows))
        return len(rows)

    # Helpers

    async def _role_permissions(self, role_ids: list[Any]) -> dict[str, dict[str, Any]]:
        """Granted permissions reachable from roles, keyed and deduped by code."""
        if not role_ids:
            return {}
        links = (
            self.client.table("role_permissions")
            .select("permission_id")
            .in_("role_id", [str(rid) for rid in role_ids])
            .execute()
        ).data or []
        if not links:
            return {}

        rows = (
            self.client.table("permissions")
            .select("*")
            .in_("id", list({str(link["permission_id"]) for link in links}))
            .eq("is_granted", True)
            .execute()
        ).data or []

        by_code: dict[str, dict[str, Any]] = {}
        for row in rows:
            by_code.setdefault(row["code"], row)
        return by_code

    async def _get_grant(self, company_permission_id: UUID) -> dict[str, Any]:
        response = (
            self.client.table("company_permissions")
            .select("*")
            .eq("id", str(company_permission_id))
            .maybe_single()
            .execute()
        )
        if not response or not response.data:
            raise NotFoundError("Company permission not found")
        return response.data

    async def _codes_by_id(self, permission_ids: set[Any]) -> dict[str, str]:
        if not permission_ids:
            return {}
        rows = (
            self.client.table("permissions")
            .select("id, code")
            .in_("id", [str(pid) for pid in permission_ids])
            .execute()
        ).data or []
        return {str(row["id"]): row["code"] for row in rows}

    async def _ensure_manageable_user(self, caller: UserContext, user_id: UUID, owner_only: bool) -> dict[str, Any]:
        response = (
            self.client.table("tax_users")
            .select("id, company_id")
            .eq("id", str(user_id))
            .maybe_single()
            .execute()
        )
        if not response or not response.data:
            raise NotFoundError("User not found")

        user = response.data
        if str(user["company_id"]) != str(caller.company_id):
            raise AuthorizationError("User belongs to another company")
        if not caller.is_owner and (owner_only or str(user_id) != str(caller.user_id)):
            raise AuthorizationError("Only company owners can manage user permissions")
        return user
