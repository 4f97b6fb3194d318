"""Invitation business logic service.

The persisted invitation row is the source of truth; the token carried in the
link is a signed capability that references the row id. Every status change
out of ``pending`` is a conditional update, so concurrent transitions cannot
both succeed.
"""

import logging
from collections import Counter
from datetime import timedelta
from typing import Any
from uuid import UUID, uuid4

from supabase import Client

from src.api.middleware.error_handler import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from src.core.config import get_settings
from src.core.dates import parse_datetime, utcnow
from src.core.events import EventBus, get_event_bus
from src.core.supabase import get_supabase_client
from src.core.transaction import SupabaseTransaction
from src.models.company import company_display_name
from src.models.invitation import InvitationStatus
from src.schemas.auth import UserContext
from src.schemas.events import (
    InvitationCancelledEvent,
    InvitationExpiredEvent,
    UserInvitationSentEvent,
    UserRegisteredEvent,
)
from src.schemas.invitation import (
    CancelResult,
    CanSendMoreResponse,
    ExpireSweepResult,
    InvitationSent,
    InvitationStats,
    InvitationValidation,
    RegisterByInvitationRequest,
    RegistrationResult,
    SendInvitationRequest,
)
from src.services.limit_policy import PLAN_INACTIVE_MESSAGE, LimitPolicy, limit_exceeded_message
from src.services.permission_service import PermissionService
from src.services.role_service import RoleService
from src.services.token_service import INVALID_INVITATION_MESSAGE, TokenFailureReason, TokenService
from src.services.user_service import UserService

logger = logging.getLogger(__name__)

NO_ACTIVE_OWNERS_MESSAGE = "Company has no active owners"
INVITATION_EXPIRED_MESSAGE = "Invitation has expired"
NOTHING_TO_CANCEL_MESSAGE = "No valid invitations found to cancel"

_PENDING = InvitationStatus.PENDING.value


def too_many_pending_message(pending: int) -> str:
    return f"Too many pending invitations ({pending}). Please wait for some to be accepted or expire."


def slots_reserved_message(pending: int) -> str:
    return f"User limit reached. You have {pending} pending invitation(s)"


def build_invitation_link(origin: str, token: str) -> str:
    return f"{origin.rstrip('/')}/auth/invitation?token={token}"


class InvitationService:
    """Service for the invitation lifecycle of a company."""

    def __init__(
        self,
        client: Client | None = None,
        event_bus: EventBus | None = None,
        token_service: TokenService | None = None,
    ) -> None:
        self.client = client or get_supabase_client()
        self.event_bus = event_bus or get_event_bus()
        self.tokens = token_service or TokenService()
        self.settings = get_settings()
        self.limits = LimitPolicy(self.client)
        self.roles = RoleService(self.client)
        self.permissions = PermissionService(self.client)
        self.users = UserService(self.client, self.event_bus, self.tokens)

    # Send

    async def send_invitation(
        self,
        caller: UserContext,
        data: SendInvitationRequest,
        origin: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> InvitationSent:
        """Invite an email address into the caller's company.

        Preconditions are checked in order before anything is written: the
        inviter is an active member, the company exists and has an active
        Owner, the plan admits one more user, the email is free, no pending
        invitation exists for it, the pending cap is not reached and the
        requested roles exist and are not privileged.

        Args:
            caller: Authenticated inviter.
            data: Email, role ids and optional personal message.
            origin: Frontend origin used to build the link.
            ip_address: Client address recorded on the row.
            user_agent: Client user agent recorded on the row.

        Returns:
            InvitationSent: Id, link and expiry of the new invitation.
        """
        email = data.email.lower()

        inviter = await self.users.get_user(caller.user_id)
        if not inviter or str(inviter["company_id"]) != str(caller.company_id):
            raise NotFoundError("User not found or insufficient permissions")
        if not inviter["is_active"]:
            raise AuthorizationError("User account is inactive")

        company = await self.users.get_company(caller.company_id)
        if not company:
            raise NotFoundError("Company not found")
        if await self.users.count_active_owners(caller.company_id) == 0:
            raise ConflictError(NO_ACTIVE_OWNERS_MESSAGE)

        status = await self.limits.ensure_can_add_user(caller.company_id)

        if await self.users.is_email_registered(email):
            raise ConflictError("Email already registered in the system")

        if await self._has_pending_invitation(caller.company_id, email):
            raise ConflictError("A pending invitation already exists for this email")

        if status.pending_invitations >= self.settings.max_pending_invitations:
            logger.warning(
                "Too many pending invitations for company %s: %d",
                caller.company_id,
                status.pending_invitations,
            )
            raise ConflictError(too_many_pending_message(status.pending_invitations))

        roles = await self.roles.resolve_invitation_roles(data.role_ids)
        role_ids = [UUID(str(role["id"])) for role in roles]

        invitation_id = uuid4()
        token, expires_at = self.tokens.generate_invitation(invitation_id, caller.company_id, email, role_ids)
        link = build_invitation_link(origin or self.settings.frontend_url, token)

        async with SupabaseTransaction(self.client, self.event_bus) as tx:
            tx.insert(
                "invitations",
                {
                    "id": str(invitation_id),
                    "company_id": str(caller.company_id),
                    "invited_by_user_id": str(caller.user_id),
                    "email": email,
                    "token": token,
                    "invitation_link": link,
                    "expires_at": expires_at.isoformat(),
                    "status": _PENDING,
                    "role_ids": [str(rid) for rid in role_ids],
                    "personal_message": data.personal_message,
                    "ip_address": ip_address,
                    "user_agent": user_agent,
                },
            )
            tx.stage(
                UserInvitationSentEvent(
                    invitation_id=invitation_id,
                    company_id=caller.company_id,
                    email=email,
                    invitation_link=link,
                    expires_at=expires_at,
                    company_name=company_display_name(company),
                    company_full_name=company.get("full_name"),
                    company_domain=company.get("domain"),
                    is_company=bool(company.get("is_company", True)),
                    personal_message=data.personal_message,
                )
            )

        logger.info(
            "Invitation %s sent",
            invitation_id,
            extra={"company_id": str(caller.company_id), "invited_by": str(caller.user_id)},
        )
        return InvitationSent(
            invitation_id=invitation_id,
            email=email,
            invitation_link=link,
            expires_at=expires_at,
            company_name=company_display_name(company),
        )

    # Validate

    async def validate_invitation(self, token: str) -> InvitationValidation:
        """Check an invitation token for the registration UI. Never raises for business failures."""
        result = self.tokens.validate_invitation(token)
        if not result.is_valid:
            return InvitationValidation(is_valid=False, error_message=result.error)

        invitation = await self._get_invitation_row(result.invitation_id)
        if not invitation or invitation.get("token") != token:
            return InvitationValidation(is_valid=False, error_message="Invitation not found")
        if invitation["status"] != _PENDING:
            return InvitationValidation(
                is_valid=False,
                error_message=f"Invitation is no longer valid. Status: {invitation['status']}",
            )
        if parse_datetime(invitation["expires_at"]) <= utcnow():
            return InvitationValidation(is_valid=False, error_message=INVITATION_EXPIRED_MESSAGE)

        company = await self.users.get_company(result.company_id)
        if not company:
            return InvitationValidation(is_valid=False, error_message="Company not found")

        plan = await self.limits.get_plan(result.company_id)
        if not plan or not plan["is_active"]:
            return InvitationValidation(is_valid=False, error_message=PLAN_INACTIVE_MESSAGE)

        if await self.users.is_email_registered(result.email):
            return InvitationValidation(is_valid=False, error_message="Email already registered")

        return InvitationValidation(
            is_valid=True,
            invitation_id=result.invitation_id,
            email=result.email,
            company_id=result.company_id,
            company_name=company_display_name(company),
            company_full_name=company.get("full_name"),
            company_domain=company.get("domain"),
            is_company=bool(company.get("is_company", True)),
            role_ids=result.role_ids,
            expires_at=parse_datetime(invitation["expires_at"]),
        )

    # Accept via registration

    async def register_by_invitation(self, data: RegisterByInvitationRequest) -> RegistrationResult:
        """Create an active, confirmed member from an invitation token.

        Re-checks every send-time precondition, assigns the invitation's
        roles, copies the Owners' Administrator permissions and marks the
        invitation accepted in one transaction.

        Raises:
            ValidationError: If the token or invitation is invalid or expired.
            ConflictError: If the plan, limit or email checks fail, or the
                invitation was processed concurrently.
        """
        result = self.tokens.validate_invitation(data.token)
        if not result.is_valid:
            if result.reason == TokenFailureReason.EXPIRED:
                expired_id = self.tokens.expired_invitation_id(data.token)
                if expired_id:
                    await self._expire_one(expired_id)
                raise ValidationError(INVITATION_EXPIRED_MESSAGE)
            raise ValidationError(result.error or INVALID_INVITATION_MESSAGE)

        invitation = await self._get_invitation_row(result.invitation_id)
        if not invitation or invitation.get("token") != data.token:
            raise NotFoundError("Invitation not found")
        if invitation["status"] != _PENDING:
            raise ValidationError(f"Invitation is no longer valid. Status: {invitation['status']}")
        if parse_datetime(invitation["expires_at"]) <= utcnow():
            await self._expire_one(result.invitation_id)
            raise ValidationError(INVITATION_EXPIRED_MESSAGE)

        company_id = result.company_id
        company = await self.users.get_company(company_id)
        if not company:
            raise NotFoundError("Company not found")
        if await self.users.count_active_owners(company_id) == 0:
            raise ConflictError(NO_ACTIVE_OWNERS_MESSAGE)

        await self.limits.ensure_can_add_user(company_id)

        if await self.users.is_email_registered(result.email):
            raise ConflictError("Email already registered")

        roles = await self.roles.resolve_invitation_roles([UUID(str(rid)) for rid in invitation.get("role_ids") or []])
        now = utcnow().isoformat()

        async with SupabaseTransaction(self.client, self.event_bus) as tx:
            claimed = tx.update(
                "invitations",
                {"status": InvitationStatus.ACCEPTED.value, "accepted_at": now, "updated_at": now},
                revert={"status": _PENDING, "accepted_at": None, "registered_user_id": None},
                eq={"id": str(result.invitation_id), "status": _PENDING},
            )
            if not claimed:
                raise ConflictError("Invitation not found or already processed")

            user = self.users.insert_user(
                tx,
                company_id=company_id,
                email=result.email,
                password=data.password,
                name=data.name,
                last_name=data.last_name,
                phone_number=data.phone_number,
                is_owner=False,
                is_active=True,
                confirmed=True,
            )
            self.roles.assign_roles(tx, user["id"], roles)
            inherited = await self.permissions.inherit_administrator_permissions(tx, company_id, user["id"])

            tx.update(
                "invitations",
                {"registered_user_id": str(user["id"])},
                eq={"id": str(result.invitation_id)},
            )
            tx.stage(
                UserRegisteredEvent(
                    tax_user_id=user["id"],
                    email=user["email"],
                    name=data.name,
                    last_name=data.last_name,
                    company_id=company_id,
                    company_name=company_display_name(company),
                    company_full_name=company.get("full_name"),
                    company_domain=company.get("domain"),
                    is_company=bool(company.get("is_company", True)),
                )
            )

        logger.info(
            "User %s registered by invitation %s",
            user["id"],
            result.invitation_id,
            extra={"company_id": str(company_id), "inherited_permissions": inherited},
        )
        return RegistrationResult(
            user_id=user["id"],
            email=user["email"],
            company_id=company_id,
            roles=[role["name"] for role in roles],
            inherited_permissions=inherited,
        )

    # Cancel

    async def cancel_invitation(self, caller: UserContext, invitation_id: UUID, reason: str | None = None) -> CancelResult:
        return await self.cancel_invitations(caller, [invitation_id], reason)

    async def cancel_invitations(
        self,
        caller: UserContext,
        invitation_ids: list[UUID],
        reason: str | None = None,
    ) -> CancelResult:
        """Cancel pending invitations of the caller's company.

        Invitations that are not pending or belong to another company are
        skipped. Emits one InvitationCancelledEvent per cancelled row.

        Raises:
            AuthorizationError: If the caller is inactive.
            ConflictError: If nothing could be cancelled.
        """
        canceller = await self.users.get_user(caller.user_id)
        if not canceller or str(canceller["company_id"]) != str(caller.company_id):
            raise AuthorizationError("User not found or insufficient permissions")
        if not canceller["is_active"]:
            raise AuthorizationError("User account is inactive")

        requested = [str(iid) for iid in dict.fromkeys(invitation_ids)]
        company = await self.users.get_company(caller.company_id) or {}
        now = utcnow().isoformat()

        async with SupabaseTransaction(self.client, self.event_bus) as tx:
            cancelled = tx.update(
                "invitations",
                {
                    "status": InvitationStatus.CANCELLED.value,
                    "cancelled_at": now,
                    "cancelled_by_user_id": str(caller.user_id),
                    "cancellation_reason": reason,
                    "updated_at": now,
                },
                revert={
                    "status": _PENDING,
                    "cancelled_at": None,
                    "cancelled_by_user_id": None,
                    "cancellation_reason": None,
                },
                eq={"company_id": str(caller.company_id), "status": _PENDING},
                in_={"id": requested},
            )
            if not cancelled:
                logger.warning(
                    "No valid invitations found to cancel for user %s",
                    caller.user_id,
                    extra={"invitation_ids": requested},
                )
                raise ConflictError(NOTHING_TO_CANCEL_MESSAGE)

            for row in cancelled:
                tx.stage(
                    InvitationCancelledEvent(
                        invitation_id=row["id"],
                        company_id=row["company_id"],
                        email=row["email"],
                        cancelled_by_user_id=caller.user_id,
                        cancellation_reason=reason,
                        company_name=company_display_name(company) if company else None,
                        company_domain=company.get("domain"),
                    )
                )

        cancelled_ids = {str(row["id"]) for row in cancelled}
        logger.info("Cancelled %d invitation(s)", len(cancelled_ids), extra={"company_id": str(caller.company_id)})
        return CancelResult(
            cancelled_count=len(cancelled_ids),
            cancelled_ids=[UUID(iid) for iid in requested if iid in cancelled_ids],
            skipped_ids=[UUID(iid) for iid in requested if iid not in cancelled_ids],
        )

    # Expire

    async def mark_expired(self, company_id: UUID | None = None) -> ExpireSweepResult:
        """Expire every pending invitation past its expiry in one conditional update.

        Events are built only from the rows the update returned, so a row
        cancelled concurrently produces no expiry event.

        Args:
            company_id: Restrict the sweep to one company.

        Returns:
            ExpireSweepResult: Count and ids of expired invitations.
        """
        now = utcnow().isoformat()
        eq = {"status": _PENDING}
        if company_id:
            eq["company_id"] = str(company_id)

        async with SupabaseTransaction(self.client, self.event_bus) as tx:
            expired = tx.update(
                "invitations",
                {"status": InvitationStatus.EXPIRED.value, "updated_at": now},
                revert={"status": _PENDING},
                eq=eq,
                lte={"expires_at": now},
            )
            await self._stage_expired_events(tx, expired)

        if expired:
            logger.info("Marked %d invitation(s) as expired", len(expired))
        return ExpireSweepResult(
            expired_count=len(expired),
            invitation_ids=[UUID(str(row["id"])) for row in expired],
        )

    async def mark_company_expired(self, caller: UserContext) -> ExpireSweepResult:
        """On-demand sweep of the caller's company (Owners only)."""
        if not caller.is_owner:
            raise AuthorizationError("Only company owners can expire invitations")
        return await self.mark_expired(caller.company_id)

    async def _expire_one(self, invitation_id: UUID) -> None:
        async with SupabaseTransaction(self.client, self.event_bus) as tx:
            expired = tx.update(
                "invitations",
                {"status": InvitationStatus.EXPIRED.value, "updated_at": utcnow().isoformat()},
                revert={"status": _PENDING},
                eq={"id": str(invitation_id), "status": _PENDING},
            )
            await self._stage_expired_events(tx, expired)
        if expired:
            logger.info("Invitation has expired and was marked as expired: %s", invitation_id)

    async def _stage_expired_events(self, tx: SupabaseTransaction, rows: list[dict[str, Any]]) -> None:
        companies = await self._companies_by_id({row["company_id"] for row in rows})
        for row in rows:
            company = companies.get(str(row["company_id"]), {})
            tx.stage(
                InvitationExpiredEvent(
                    invitation_id=row["id"],
                    company_id=row["company_id"],
                    email=row["email"],
                    company_name=company_display_name(company) if company else None,
                    company_domain=company.get("domain"),
                )
            )

    # Queries

    async def list_company_invitations(
        self,
        caller: UserContext,
        status: InvitationStatus | None = None,
    ) -> list[dict[str, Any]]:
        query = (
            self.client.table("invitations")
            .select("*")
            .eq("company_id", str(caller.company_id))
        )
        if status:
            query = query.eq("status", status.value)

        response = query.order("created_at", desc=True).execute()
        return response.data or []

    async def get_invitation(self, caller: UserContext, invitation_id: UUID) -> dict[str, Any]:
        invitation = await self._get_invitation_row(invitation_id)
        if not invitation or str(invitation["company_id"]) != str(caller.company_id):
            raise NotFoundError("Invitation not found")
        return invitation

    async def get_stats(self, company_id: UUID) -> InvitationStats:
        rows = (
            self.client.table("invitations")
            .select("status, created_at")
            .eq("company_id", str(company_id))
            .execute()
        ).data or []

        now = utcnow()
        by_status = Counter(row["status"] for row in rows)
        created = [parse_datetime(row["created_at"]) for row in rows]
        total = len(rows)
        accepted = by_status.get(InvitationStatus.ACCEPTED.value, 0)

        return InvitationStats(
            total=total,
            pending=by_status.get(_PENDING, 0),
            accepted=accepted,
            cancelled=by_status.get(InvitationStatus.CANCELLED.value, 0),
            expired=by_status.get(InvitationStatus.EXPIRED.value, 0),
            failed=by_status.get(InvitationStatus.FAILED.value, 0),
            last_24_hours=sum(1 for ts in created if ts >= now - timedelta(hours=24)),
            last_7_days=sum(1 for ts in created if ts >= now - timedelta(days=7)),
            last_30_days=sum(1 for ts in created if ts >= now - timedelta(days=30)),
            acceptance_rate=round(accepted / total * 100, 2) if total else 0.0,
        )

    async def can_send_more(self, company_id: UUID) -> CanSendMoreResponse:
        status = await self.limits.get_status(company_id)

        reason = None
        if not status.plan_active:
            reason = PLAN_INACTIVE_MESSAGE
        elif status.active_users >= status.user_limit:
            reason = limit_exceeded_message(status.active_users, status.user_limit)
        elif status.remaining_invitations <= 0:
            reason = slots_reserved_message(status.pending_invitations)
        elif status.pending_invitations >= self.settings.max_pending_invitations:
            reason = too_many_pending_message(status.pending_invitations)

        return CanSendMoreResponse(
            can_send=reason is None,
            reason=reason,
            plan_active=status.plan_active,
            user_limit=status.user_limit,
            active_users=status.active_users,
            pending_invitations=status.pending_invitations,
            available_slots=status.available_slots,
            remaining_invitations=status.remaining_invitations,
        )

    # Helpers

    async def _get_invitation_row(self, invitation_id: UUID | None) -> dict[str, Any] | None:
        if invitation_id is None:
            return None
        response = (
            self.client.table("invitations")
            .select("*")
            .eq("id", str(invitation_id))
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def _has_pending_invitation(self, company_id: UUID, email: str) -> bool:
        response = (
            self.client.table("invitations")
            .select("id")
            .eq("company_id", str(company_id))
            .eq("email", email)
            .eq("status", _PENDING)
            .gt("expires_at", utcnow().isoformat())
            .limit(1)
            .execute()
        )
        return bool(response.data)

    async def _companies_by_id(self, company_ids: set[Any]) -> dict[str, dict[str, Any]]:
        if not company_ids:
            return {}
        rows = (
            self.client.table("companies")
            .select("*")
            .in_("id", [str(cid) for cid in company_ids])
            .execute()
        ).data or []
        return {str(row["id"]): row for row in rows}
