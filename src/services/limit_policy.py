"""User limit enforcement against a company's plan."""

import logging
from uuid import UUID

from supabase import Client

from src.api.middleware.error_handler import ConflictError, NotFoundError
from src.core.dates import utcnow
from src.core.supabase import get_supabase_client
from src.models.invitation import InvitationStatus
from src.schemas.company import UserLimitStatus

logger = logging.getLogger(__name__)

PLAN_INACTIVE_MESSAGE = "Company plan is inactive"


def can_add_user(plan_active: bool, active_users: int, user_limit: int) -> bool:
    """Return True when one more active user fits the plan.

    Every active user counts, Owners included.
    """
    return plan_active and active_users < user_limit


def limit_exceeded_message(active_users: int, user_limit: int) -> str:
    return f"User limit exceeded. Current: {active_users}, Limit: {user_limit}."


class LimitPolicy:
    """Reads plan usage and guards every flow that adds an active user.

    Checked when sending an invitation, registering through one, creating a
    user as a developer and re-enabling a disabled user.
    """

    def __init__(self, client: Client | None = None) -> None:
        self.client = client or get_supabase_client()

    async def get_plan(self, company_id: UUID) -> dict | None:
        response = (
            self.client.table("custom_plans")
            .select("*")
            .eq("company_id", str(company_id))
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def count_active_users(self, company_id: UUID) -> int:
        response = (
            self.client.table("tax_users")
            .select("id", count="exact")
            .eq("company_id", str(company_id))
            .eq("is_active", True)
            .execute()
        )
        return response.count or 0

    async def count_pending_invitations(self, company_id: UUID) -> int:
        """Count pending invitations that have not yet expired."""
        response = (
            self.client.table("invitations")
            .select("id", count="exact")
            .eq("company_id", str(company_id))
            .eq("status", InvitationStatus.PENDING.value)
            .gt("expires_at", utcnow().isoformat())
            .execute()
        )
        return response.count or 0

    async def get_status(self, company_id: UUID) -> UserLimitStatus:
        """Get the plan usage snapshot of a company.

        Raises:
            NotFoundError: If the company has no plan.
        """
        plan = await self.get_plan(company_id)
        if not plan:
            raise NotFoundError("Company plan not found")

        return UserLimitStatus(
            plan_active=bool(plan["is_active"]),
            user_limit=int(plan["user_limit"]),
            active_users=await self.count_active_users(company_id),
            pending_invitations=await self.count_pending_invitations(company_id),
        )

    async def ensure_can_add_user(self, company_id: UUID, override: bool = False) -> UserLimitStatus:
        """Raise unless the company may gain one more active user.

        Args:
            company_id: The company's UUID.
            override: Skip both checks (developer-created users).

        Returns:
            UserLimitStatus: Snapshot the decision was based on.

        Raises:
            NotFoundError: If the company has no plan.
            ConflictError: If the plan is inactive or the limit is reached.
        """
        status = await self.get_status(company_id)

        if override:
            logger.info("User limit check overridden for company %s", company_id)
            return status

        if not status.plan_active:
            logger.info("Plan inactive for company %s", company_id)
            raise ConflictError(PLAN_INACTIVE_MESSAGE)

        if not can_add_user(status.plan_active, status.active_users, status.user_limit):
            logger.info(
                "User limit reached for company %s: %d/%d",
                company_id,
                status.active_users,
                status.user_limit,
            )
            raise ConflictError(limit_exceeded_message(status.active_users, status.user_limit))

        return status
