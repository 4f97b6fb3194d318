"""Session lifecycle: login, refresh, logout, revocation and masked queries."""

import logging
from typing import Any
from uuid import UUID, uuid4

from supabase import Client

from src.api.middleware.auth import AuthError, decode_jwt
from src.api.middleware.error_handler import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
)
from src.core.dates import utcnow
from src.core.events import EventBus, get_event_bus
from src.core.security import verify_password
from src.core.supabase import get_supabase_client
from src.core.transaction import SupabaseTransaction
from src.models.permission import RoleCategory
from src.schemas.auth import LoginRequest, LoginResponse, LoginUser, LogoutResult, RefreshResponse, UserContext
from src.schemas.events import UserLoginEvent, UserPresenceChangedEvent
from src.schemas.session import RevokeResult, SessionResponse, SessionStats
from src.services.role_service import RoleService
from src.services.token_service import TokenPurpose, TokenService

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid credentials"

# Order used to pick the role name embedded in tokens
_ROLE_PRIORITY = [
    RoleCategory.OWNER,
    RoleCategory.ADMINISTRATOR,
    RoleCategory.DEVELOPER,
    RoleCategory.MEMBER,
    RoleCategory.CUSTOMER,
]


def primary_role_name(roles: list[dict[str, Any]]) -> str | None:
    if not roles:
        return None
    ranked = sorted(roles, key=lambda r: _ROLE_PRIORITY.index(RoleCategory(r["category"])))
    return ranked[0]["name"]


def can_access_portal(is_owner: bool, roles: list[dict[str, Any]]) -> bool:
    """Owners, or holders of any non-customer role, may log in."""
    if is_owner:
        return True
    return any(RoleCategory(role["category"]) != RoleCategory.CUSTOMER for role in roles)


class SessionService:
    """Service for login sessions of tax users.

    Session rows are created at login and afterwards only ever have their
    ``is_revoke`` flag set. Revocation is idempotent.
    """

    def __init__(
        self,
        client: Client | None = None,
        event_bus: EventBus | None = None,
        token_service: TokenService | None = None,
        role_service: RoleService | None = None,
    ) -> None:
        self.client = client or get_supabase_client()
        self.event_bus = event_bus or get_event_bus()
        self.tokens = token_service or TokenService()
        self.roles = role_service or RoleService(self.client)

    # Login / refresh / logout

    async def login(
        self,
        data: LoginRequest,
        ip_address: str | None = None,
        device: str | None = None,
    ) -> LoginResponse:
        """Authenticate credentials and open a new session.

        Args:
            data: Email and password.
            ip_address: Client address recorded on the session.
            device: Client device description (falls back to ``data.device``).

        Returns:
            LoginResponse: Token pair bound to the new session.

        Raises:
            AuthenticationError: If the credentials do not match.
            AuthorizationError: If the account is inactive or its roles do
                not grant portal access.
        """
        response = (
            self.client.table("tax_users")
            .select("*")
            .eq("email", data.email.lower())
            .maybe_single()
            .execute()
        )
        user = response.data if response and response.data else None

        if not user or not verify_password(data.password, user.get("password_hash")):
            logger.info("Failed login attempt", extra={"ip_address": ip_address})
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)

        if not user["is_active"]:
            raise AuthorizationError("User account is inactive")

        roles = await self.roles.get_user_roles(user["id"])
        if not can_access_portal(bool(user["is_owner"]), roles):
            logger.warning("Portal access denied by role", extra={"user_id": str(user["id"])})
            raise AuthorizationError("Your role does not allow access to this portal")

        session_id = uuid4()
        role_name = primary_role_name(roles)
        access_token, access_expires = self.tokens.generate_access_token(user, session_id, role_name)
        refresh_token, refresh_expires = self.tokens.generate_refresh_token(user, session_id, role_name)

        async with SupabaseTransaction(self.client, self.event_bus) as tx:
            tx.insert(
                "sessions",
                {
                    "id": str(session_id),
                    "tax_user_id": str(user["id"]),
                    "token_request": access_token,
                    "expire_token_request": access_expires.isoformat(),
                    "token_refresh": refresh_token,
                    "expire_token_refresh": refresh_expires.isoformat(),
                    "ip_address": ip_address,
                    "device": device or data.device,
                    "is_revoke": False,
                },
            )
            tx.stage(
                UserLoginEvent(
                    user_id=user["id"],
                    email=user["email"],
                    session_id=session_id,
                    ip_address=ip_address,
                    device=device or data.device,
                )
            )
            tx.stage(UserPresenceChangedEvent(user_id=user["id"], company_id=user["company_id"], is_online=True))

        logger.info("User logged in", extra={"user_id": str(user["id"]), "session_id": str(session_id)})

        return LoginResponse(
            session_id=session_id,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=access_expires,
            refresh_expires_at=refresh_expires,
            user=LoginUser(
                id=user["id"],
                email=user["email"],
                name=user.get("name"),
                last_name=user.get("last_name"),
                company_id=user["company_id"],
                is_owner=bool(user["is_owner"]),
                roles=[role["name"] for role in roles],
            ),
        )

    async def refresh(self, refresh_token: str) -> RefreshResponse:
        """Issue a new access token for a live session.

        Raises:
            AuthenticationError: If the token is invalid or the session is
                revoked or belongs to an inactive user.
        """
        try:
            payload = decode_jwt(refresh_token, TokenPurpose.REFRESH)
        except AuthError as e:
            raise AuthenticationError("Invalid refresh token") from e

        session_id = UUID(payload.sid)
        if not await self.is_session_active(session_id, UUID(payload.sub)):
            raise AuthenticationError("Session has been revoked")

        response = (
            self.client.table("tax_users")
            .select("*")
            .eq("id", payload.sub)
            .maybe_single()
            .execute()
        )
        user = response.data if response and response.data else None
        if not user or not user["is_active"]:
            raise AuthenticationError("User account is inactive")

        access_token, expires_at = self.tokens.generate_access_token(user, session_id, payload.role)
        return RefreshResponse(session_id=session_id, access_token=access_token, expires_at=expires_at)

    async def logout(self, caller: UserContext) -> LogoutResult:
        async with SupabaseTransaction(self.client, self.event_bus) as tx:
            revoked = tx.update(
                "sessions",
                {"is_revoke": True, "updated_at": utcnow().isoformat()},
                revert={"is_revoke": False},
                eq={"id": str(caller.session_id), "tax_user_id": str(caller.user_id), "is_revoke": False},
            )
            tx.stage(UserPresenceChangedEvent(user_id=caller.user_id, company_id=caller.company_id, is_online=False))

        logger.info("User logged out", extra={"user_id": str(caller.user_id), "session_id": str(caller.session_id)})
        return LogoutResult(revoked_sessions=len(revoked))

    async def logout_all(self, caller: UserContext) -> LogoutResult:
        """Revoke every session of the caller, including customer-portal sessions under the same email."""
        now = utcnow().isoformat()

        async with SupabaseTransaction(self.client, self.event_bus) as tx:
            revoked = tx.update(
                "sessions",
                {"is_revoke": True, "updated_at": now},
                revert={"is_revoke": False},
                eq={"tax_user_id": str(caller.user_id), "is_revoke": False},
            )

            if caller.email:
                identities = (
                    self.client.table("user_companies")
                    .select("id")
                    .eq("email", caller.email.lower())
                    .execute()
                ).data or []
                if identities:
                    revoked += tx.update(
                        "user_company_sessions",
                        {"is_revoke": True, "updated_at": now},
                        revert={"is_revoke": False},
                        eq={"is_revoke": False},
                        in_={"user_company_id": [identity["id"] for identity in identities]},
                    )

            tx.stage(UserPresenceChangedEvent(user_id=caller.user_id, company_id=caller.company_id, is_online=False))

        logger.info(
            "All sessions revoked for user %s: %d",
            caller.user_id,
            len(revoked),
        )
        return LogoutResult(revoked_sessions=len(revoked))

    # Revocation

    async def revoke_session(self, caller: UserContext, session_id: UUID) -> RevokeResult:
        """Revoke one session visible to the caller.

        Raises:
            NotFoundError: If the session is not in the caller's company.
            AuthorizationError: If a non-Owner targets another user's session.
        """
        result = await self.revoke_sessions(caller, [session_id])
        if result.denied_ids:
            raise AuthorizationError("You can only revoke your own sessions")
        return result

    async def revoke_sessions(self, caller: UserContext, session_ids: list[UUID]) -> RevokeResult:
        """Revoke several sessions, checking each against the caller.

        Owners may revoke any session in their company; other users only
        their own.

        Raises:
            NotFoundError: If none of the sessions belong to the caller's company.
        """
        sessions = (
            self.client.table("sessions")
            .select("id, tax_user_id, is_revoke")
            .in_("id", [str(sid) for sid in session_ids])
            .execute()
        ).data or []

        owners_by_user = await self._company_of_users({s["tax_user_id"] for s in sessions})
        in_company = [s for s in sessions if owners_by_user.get(str(s["tax_user_id"])) == str(caller.company_id)]
        if not in_company:
            raise NotFoundError("Session not found")

        allowed: list[str] = []
        denied: list[UUID] = []
        for session in in_company:
            if caller.is_owner or str(session["tax_user_id"]) == str(caller.user_id):
                allowed.append(str(session["id"]))
            else:
                denied.append(UUID(str(session["id"])))

        revoked: list[dict[str, Any]] = []
        if allowed:
            async with SupabaseTransaction(self.client, self.event_bus) as tx:
                revoked = tx.update(
                    "sessions",
                    {"is_revoke": True, "updated_at": utcnow().isoformat()},
                    revert={"is_revoke": False},
                    eq={"is_revoke": False},
                    in_={"id": allowed},
                )

        logger.info(
            "Sessions revoked by %s: %d (denied %d)",
            caller.user_id,
            len(revoked),
            len(denied),
        )
        return RevokeResult(
            revoked_count=len(revoked),
            revoked_ids=[UUID(str(s["id"])) for s in revoked],
            denied_ids=denied,
        )

    async def revoke_user_sessions(self, caller: UserContext, user_id: UUID) -> RevokeResult:
        """Revoke all sessions of one user (Owner, or the user themselves)."""
        company_by_user = await self._company_of_users({str(user_id)})
        if company_by_user.get(str(user_id)) != str(caller.company_id):
            raise NotFoundError("User not found")
        if not caller.is_owner and str(user_id) != str(caller.user_id):
            raise AuthorizationError("You can only revoke your own sessions")

        async with SupabaseTransaction(self.client, self.event_bus) as tx:
            revoked = self.revoke_all_for_user(tx, user_id)

        return RevokeResult(revoked_count=len(revoked), revoked_ids=[UUID(str(s["id"])) for s in revoked])

    def revoke_all_for_user(self, tx: SupabaseTransaction, user_id: UUID) -> list[dict[str, Any]]:
        """Revoke every live session of a user inside an open transaction."""
        return tx.update(
            "sessions",
            {"is_revoke": True, "updated_at": utcnow().isoformat()},
            revert={"is_revoke": False},
            eq={"tax_user_id": str(user_id), "is_revoke": False},
        )

    async def is_session_active(self, session_id: UUID, user_id: UUID) -> bool:
        response = (
            self.client.table("sessions")
            .select("id, is_revoke, tax_user_id")
            .eq("id", str(session_id))
            .maybe_single()
            .execute()
        )
        session = response.data if response and response.data else None
        if not session:
            return False
        return not session["is_revoke"] and str(session["tax_user_id"]) == str(user_id)

    # Queries

    async def get_user_sessions(self, caller: UserContext, active_only: bool = False) -> list[SessionResponse]:
        rows = (
            self.client.table("sessions")
            .select("*")
            .eq("tax_user_id", str(caller.user_id))
            .order("created_at", desc=True)
            .execute()
        ).data or []
        return self._project(rows, {str(caller.user_id): caller.email}, active_only)

    async def get_company_sessions(self, caller: UserContext, active_only: bool = True) -> list[SessionResponse]:
        """Sessions of the whole company for Owners, only their own for others."""
        if not caller.is_owner:
            return await self.get_user_sessions(caller, active_only)

        users = await self._company_users(caller.company_id)
        if not users:
            return []
        rows = (
            self.client.table("sessions")
            .select("*")
            .in_("tax_user_id", list(users))
            .order("created_at", desc=True)
            .execute()
        ).data or []
        return self._project(rows, users, active_only)

    async def get_company_session_stats(self, caller: UserContext) -> SessionStats:
        if not caller.is_owner:
            raise AuthorizationError("Only company owners can view session statistics")

        sessions = await self.get_company_sessions(caller, active_only=False)
        now = utcnow()
        active = [s for s in sessions if s.is_active]
        return SessionStats(
            total_sessions=len(sessions),
            active_sessions=len(active),
            revoked_sessions=sum(1 for s in sessions if s.is_revoke),
            expired_sessions=sum(1 for s in sessions if not s.is_revoke and s.expire_token_request <= now),
            users_with_active_sessions=len({s.tax_user_id for s in active}),
        )

    def _project(
        self,
        rows: list[dict[str, Any]],
        emails: dict[str, str | None],
        active_only: bool,
    ) -> list[SessionResponse]:
        now = utcnow()
        projected = [SessionResponse.from_row(row, now, emails.get(str(row["tax_user_id"]))) for row in rows]
        if active_only:
            projected = [s for s in projected if s.is_active]
        return projected

    async def _company_users(self, company_id: UUID) -> dict[str, str | None]:
        rows = (
            self.client.table("tax_users")
            .select("id, email")
            .eq("company_id", str(company_id))
            .execute()
        ).data or []
        return {str(row["id"]): row.get("email") for row in rows}

    async def _company_of_users(self, user_ids: set[Any]) -> dict[str, str]:
        if not user_ids:
            return {}
        rows = (
            self.client.table("tax_users")
            .select("id, company_id")
            .in_("id", [str(uid) for uid in user_ids])
            .execute()
        ).data or []
        return {str(row["id"]): str(row["company_id"]) for row in rows}
