"""Company business logic service."""

import logging
from typing import Any
from uuid import UUID

from supabase import Client

from src.api.middleware.error_handler import ConflictError, NotFoundError
from src.core.config import get_settings
from src.core.dates import utcnow
from src.core.events import EventBus, get_event_bus
from src.core.supabase import get_supabase_client
from src.core.transaction import SupabaseTransaction
from src.models.company import company_display_name
from src.models.permission import RoleCategory
from src.schemas.auth import UserContext
from src.schemas.company import CompanyRegisterRequest, CompanyRegistrationResult, CompanyStats, PlanUpdateRequest
from src.schemas.events import AccountConfirmationRequestedEvent
from src.services.limit_policy import LimitPolicy
from src.services.role_service import RoleService
from src.services.token_service import TokenService
from src.services.user_service import UserService

logger = logging.getLogger(__name__)

DEFAULT_PLAN_NAME = "Basic"


def build_confirmation_link(origin: str, email: str, token: str) -> str:
    return f"{origin.rstrip('/')}/auth/confirm?email={email}&token={token}"


class CompanyService:
    """Service for managing companies and their plans."""

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
        self.users = UserService(self.client, self.event_bus, self.tokens)

    async def register_company(self, data: CompanyRegisterRequest, origin: str | None = None) -> CompanyRegistrationResult:
        """Self-register a company with its plan and first Owner.

        The Owner starts inactive and unconfirmed; an
        AccountConfirmationRequestedEvent carries the confirmation link.

        Args:
            data: Company and Owner details.
            origin: Frontend origin used to build the confirmation link.

        Returns:
            CompanyRegistrationResult: Ids of the created company and Owner.

        Raises:
            ConflictError: If the domain or email is already registered.
            NotFoundError: If no Administrator role has been seeded.
        """
        domain = data.domain.lower()
        existing = (
            self.client.table("companies")
            .select("id")
            .eq("domain", domain)
            .execute()
        )
        if existing.data:
            raise ConflictError("Domain already registered")

        if await self.users.is_email_registered(data.email):
            raise ConflictError("Email already registered")

        admin_role = await self.roles.get_role_by_category(RoleCategory.ADMINISTRATOR)
        if not admin_role:
            raise NotFoundError("Administrator role not found")

        settings = get_settings()

        async with SupabaseTransaction(self.client, self.event_bus) as tx:
            company = tx.insert(
                "companies",
                {
                    "company_name": data.company_name,
                    "full_name": data.full_name,
                    "domain": domain,
                    "is_company": data.is_company,
                    "address": data.address,
                },
            )[0]
            plan = tx.insert(
                "custom_plans",
                {
                    "company_id": company["id"],
                    "name": DEFAULT_PLAN_NAME,
                    "user_limit": settings.default_plan_user_limit,
                    "is_active": True,
                },
            )[0]
            tx.update(
                "companies",
                {"custom_plan_id": plan["id"]},
                eq={"id": str(company["id"])},
            )
            owner = self.users.insert_user(
                tx,
                company_id=company["id"],
                email=data.email,
                password=data.password,
                name=data.name,
                last_name=data.last_name,
                phone_number=data.phone_number,
                is_owner=True,
                is_active=False,
                confirmed=False,
            )
            self.roles.assign_roles(tx, owner["id"], [admin_role])

            token, _ = self.tokens.generate_confirmation(owner["id"], owner["email"])
            tx.stage(
                AccountConfirmationRequestedEvent(
                    user_id=owner["id"],
                    email=owner["email"],
                    confirmation_link=build_confirmation_link(
                        origin or settings.frontend_url,
                        owner["email"],
                        token,
                    ),
                    company_id=company["id"],
                    company_name=company_display_name(company),
                    company_domain=domain,
                )
            )

        logger.info("Company %s registered", company["id"], extra={"owner_id": str(owner["id"])})
        return CompanyRegistrationResult(company_id=company["id"], user_id=owner["id"], email=owner["email"])

    async def get_company(self, company_id: UUID) -> dict[str, Any]:
        company = await self.users.get_company(company_id)
        if not company:
            raise NotFoundError("Company not found")
        return {**company, "display_name": company_display_name(company)}

    async def get_stats(self, caller: UserContext) -> CompanyStats:
        company = await self.get_company(caller.company_id)
        status = await self.limits.get_status(caller.company_id)

        users = (
            self.client.table("tax_users")
            .select("id, is_owner, is_active")
            .eq("company_id", str(caller.company_id))
            .execute()
        ).data or []

        return CompanyStats(
            company_id=caller.company_id,
            display_name=company["display_name"],
            plan_active=status.plan_active,
            user_limit=status.user_limit,
            total_users=len(users),
            active_users=status.active_users,
            owners=sum(1 for u in users if u["is_owner"] and u["is_active"]),
            pending_invitations=status.pending_invitations,
            available_slots=status.available_slots,
        )

    async def update_plan(self, caller: UserContext, company_id: UUID, data: PlanUpdateRequest) -> dict[str, Any]:
        """Change a company's plan limit or activation (developers only)."""
        await self.roles.ensure_developer(caller.user_id)

        plan = await self.limits.get_plan(company_id)
        if not plan:
            raise NotFoundError("Company plan not found")

        changes = data.model_dump(exclude_none=True)
        if not changes:
            return plan

        response = (
            self.client.table("custom_plans")
            .update({**changes, "updated_at": utcnow().isoformat()})
            .eq("id", str(plan["id"]))
            .execute()
        )
        if not response.data:
            raise NotFoundError("Company plan not found")

        logger.info("Plan of company %s updated: %s", company_id, sorted(changes))
        return response.data[0]
