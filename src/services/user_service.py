"""Tax user business logic service."""

import logging
from typing import Any
from uuid import UUID

from supabase import Client

from src.api.middleware.error_handler import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from src.core.config import get_settings
from src.core.dates import utcnow
from src.core.events import EventBus, get_event_bus
from src.core.security import hash_password
from src.core.supabase import get_supabase_client
from src.core.transaction import SupabaseTransaction
from src.models.company import company_display_name
from src.schemas.auth import UserContext
from src.schemas.events import AccountConfirmedEvent, EmployeeAccountConfirmedEvent, PasswordResetRequestedEvent
from src.schemas.user import CreateDeveloperUserRequest, UserStatusResult
from src.services.limit_policy import LimitPolicy
from src.services.role_service import RoleService
from src.services.session_service import SessionService
from src.services.token_service import TokenService

logger = logging.getLogger(__name__)

LAST_OWNER_MESSAGE = "Cannot disable the last active owner of the company."


class UserService:
    """Service for tax users: creation, activation and credential flows."""

    def __init__(
        self,
        client: Client | None = None,
        event_bus: EventBus | None = None,
        token_service: TokenService | None = None,
    ) -> None:
        self.client = client or get_supabase_client()
        self.event_bus = event_bus or get_event_bus()
        self.tokens = token_service or TokenService()
        self.limits = LimitPolicy(self.client)
        self.roles = RoleService(self.client)
        self.sessions = SessionService(self.client, self.event_bus, self.tokens, self.roles)

    # Lookups

    async def get_user(self, user_id: UUID) -> dict[str, Any] | None:
        response = (
            self.client.table("tax_users")
            .select("*")
            .eq("id", str(user_id))
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def get_user_by_email(self, email: str) -> dict[str, Any] | None:
        response = (
            self.client.table("tax_users")
            .select("*")
            .eq("email", email.lower())
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def is_email_registered(self, email: str) -> bool:
        """Check both tax users and company customer identities."""
        normalized = email.lower()
        for table in ("tax_users", "user_companies"):
            response = (
                self.client.table(table)
                .select("id")
                .eq("email", normalized)
                .limit(1)
                .execute()
            )
            if response.data:
                return True
        return False

    async def count_active_owners(self, company_id: UUID) -> int:
        response = (
            self.client.table("tax_users")
            .select("id", count="exact")
            .eq("company_id", str(company_id))
            .eq("is_owner", True)
            .eq("is_active", True)
            .execute()
        )
        return response.count or 0

    async def get_company(self, company_id: UUID) -> dict[str, Any] | None:
        response = (
            self.client.table("companies")
            .select("*")
            .eq("id", str(company_id))
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def list_company_users(self, caller: UserContext) -> list[dict[str, Any]]:
        users = (
            self.client.table("tax_users")
            .select("*")
            .eq("company_id", str(caller.company_id))
            .order("created_at")
            .execute()
        ).data or []
        result = []
        for user in users:
            roles = await self.roles.get_user_roles(user["id"])
            result.append({**user, "roles": [role["name"] for role in roles]})
        return result

    # Creation

    def insert_user(
        self,
        tx: SupabaseTransaction,
        *,
        company_id: UUID,
        email: str,
        password: str,
        name: str,
        last_name: str,
        phone_number: str | None = None,
        is_owner: bool = False,
        is_active: bool = True,
        confirmed: bool = True,
    ) -> dict[str, Any]:
        """Insert a tax_users row inside an open transaction."""
        return tx.insert(
            "tax_users",
            {
                "company_id": str(company_id),
                "email": email.lower(),
                "password_hash": hash_password(password),
                "name": name,
                "last_name": last_name,
                "phone_number": phone_number,
                "is_owner": is_owner,
                "is_active": is_active,
                "confirmed": confirmed,
            },
        )[0]

    async def create_user_by_developer(self, caller: UserContext, data: CreateDeveloperUserRequest) -> dict[str, Any]:
        """Create an active, confirmed user directly in any company.

        Raises:
            AuthorizationError: If the caller holds no developer role.
            NotFoundError: If the company does not exist.
            ConflictError: If the email is taken or the limit is reached
                (unless ``ignore_user_limit``).
        """
        await self.roles.ensure_developer(caller.user_id)

        company = await self.get_company(data.company_id)
        if not company:
            raise NotFoundError("Company not found")

        if await self.is_email_registered(data.email):
            raise ConflictError("Email already registered")

        await self.limits.ensure_can_add_user(data.company_id, override=data.ignore_user_limit)

        if data.role_ids:
            requested = list(dict.fromkeys(data.role_ids))
            roles = await self.roles.get_roles(requested)
            if len(roles) != len(requested):
                raise ValidationError("Some specified roles were not found")
        else:
            roles = [await self.roles.get_default_member_role()]

        async with SupabaseTransaction(self.client, self.event_bus) as tx:
            user = self.insert_user(
                tx,
                company_id=data.company_id,
                email=data.email,
                password=data.password,
                name=data.name,
                last_name=data.last_name,
                phone_number=data.phone_number,
                is_owner=data.is_owner,
            )
            self.roles.assign_roles(tx, user["id"], roles)

        logger.info(
            "User %s created by developer %s",
            user["id"],
            caller.user_id,
            extra={"company_id": str(data.company_id), "ignore_user_limit": data.ignore_user_limit},
        )
        return {**user, "roles": [role["name"] for role in roles]}

    # Activation

    async def enable_user(self, caller: UserContext, user_id: UUID) -> UserStatusResult:
        """Re-activate a disabled user, subject to the plan limit."""
        user = await self._get_manageable_user(caller, user_id)
        if user["is_active"]:
            return UserStatusResult(user_id=user_id, is_active=True)

        await self.limits.ensure_can_add_user(caller.company_id)

        async with SupabaseTransaction(self.client, self.event_bus) as tx:
            tx.update(
                "tax_users",
                {"is_active": True, "updated_at": utcnow().isoformat()},
                revert={"is_active": False},
                eq={"id": str(user_id)},
            )

        logger.info("User %s enabled by %s", user_id, caller.user_id)
        return UserStatusResult(user_id=user_id, is_active=True)

    async def disable_user(self, caller: UserContext, user_id: UUID) -> UserStatusResult:
        """Soft-disable a user and revoke their sessions.

        Raises:
            ConflictError: If the user is the last active Owner.
        """
        user = await self._get_manageable_user(caller, user_id)
        if not user["is_active"]:
            return UserStatusResult(user_id=user_id, is_active=False)

        if user["is_owner"] and await self.count_active_owners(caller.company_id) <= 1:
            raise ConflictError(LAST_OWNER_MESSAGE)

        async with SupabaseTransaction(self.client, self.event_bus) as tx:
            tx.update(
                "tax_users",
                {"is_active": False, "updated_at": utcnow().isoformat()},
                revert={"is_active": True},
                eq={"id": str(user_id)},
            )
            revoked = self.sessions.revoke_all_for_user(tx, user_id)

        logger.info("User %s disabled by %s, %d sessions revoked", user_id, caller.user_id, len(revoked))
        return UserStatusResult(user_id=user_id, is_active=False, revoked_sessions=len(revoked))

    async def _get_manageable_user(self, caller: UserContext, user_id: UUID) -> dict[str, Any]:
        if not caller.is_owner:
            raise AuthorizationError("Only company owners can change user status")

        user = await self.get_user(user_id)
        if not user or str(user["company_id"]) != str(caller.company_id):
            raise NotFoundError("User not found")
        return user

    # Confirmation and password reset

    async def confirm_account(self, email: str, token: str) -> dict[str, Any]:
        """Confirm an account with the token from the confirmation link.

        Owners become active on confirmation. Emits AccountConfirmedEvent for
        Owners and EmployeeAccountConfirmedEvent for other users.

        Raises:
            ValidationError: If the token is invalid or issued for another email.
        """
        validation = self.tokens.validate_confirmation(token)
        if not validation.is_valid:
            raise ValidationError(validation.error or "Invalid confirmation token")
        if validation.email != email.lower():
            logger.warning("Confirmation token email mismatch", extra={"user_id": str(validation.user_id)})
            raise ValidationError("Invalid confirmation token")

        user = await self.get_user(validation.user_id)
        if not user:
            raise NotFoundError("User not found")
        if user["confirmed"]:
            raise ConflictError("Account already confirmed")

        company = await self.get_company(user["company_id"]) or {}
        event_type = AccountConfirmedEvent if user["is_owner"] else EmployeeAccountConfirmedEvent

        async with SupabaseTransaction(self.client, self.event_bus) as tx:
            updated = tx.update(
                "tax_users",
                {"confirmed": True, "is_active": True, "updated_at": utcnow().isoformat()},
                revert={"confirmed": False, "is_active": user["is_active"]},
                eq={"id": str(user["id"]), "confirmed": False},
            )
            if not updated:
                raise ConflictError("Account already confirmed")
            tx.stage(
                event_type(
                    user_id=user["id"],
                    email=user["email"],
                    company_id=user["company_id"],
                    company_name=company_display_name(company) if company else None,
                    company_domain=company.get("domain"),
                )
            )

        logger.info("Account confirmed", extra={"user_id": str(user["id"])})
        return updated[0]

    async def request_password_reset(self, email: str, origin: str | None = None) -> None:
        """Emit a reset link for an active account.

        Unknown or inactive emails are silently ignored so the endpoint does
        not reveal which addresses exist.
        """
        user = await self.get_user_by_email(email)
        if not user or not user["is_active"]:
            logger.info("Password reset requested for unknown or inactive account")
            return

        token, _ = self.tokens.generate_password_reset(user["id"], user["email"])
        base = (origin or get_settings().frontend_url).rstrip("/")
        await self.event_bus.publish(
            PasswordResetRequestedEvent(
                user_id=user["id"],
                email=user["email"],
                reset_link=f"{base}/auth/reset-password?token={token}",
            )
        )

    async def reset_password(self, token: str, new_password: str) -> int:
        """Set a new password and revoke every session of the user.

        Returns:
            int: Number of sessions revoked.
        """
        validation = self.tokens.validate_password_reset(token)
        if not validation.is_valid:
            raise ValidationError(validation.error or "Invalid password reset token")

        user = await self.get_user(validation.user_id)
        if not user or not user["is_active"]:
            raise NotFoundError("User not found")

        async with SupabaseTransaction(self.client, self.event_bus) as tx:
            tx.update(
                "tax_users",
                {"password_hash": hash_password(new_password), "updated_at": utcnow().isoformat()},
                revert={"password_hash": user["password_hash"]},
                eq={"id": str(user["id"])},
            )
            revoked = self.sessions.revoke_all_for_user(tx, user["id"])

        logger.info("Password reset completed", extra={"user_id": str(user["id"])})
        return len(revoked)
