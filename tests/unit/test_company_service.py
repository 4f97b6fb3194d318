"""Unit tests for CompanyService."""

from unittest.mock import MagicMock, patch
from uuid import UUID, uuid4

import pytest

from src.api.middleware.error_handler import AuthorizationError, ConflictError, InfrastructureError, NotFoundError
from src.core.security import verify_password
from src.schemas.company import CompanyRegisterRequest, PlanUpdateRequest
from src.schemas.events import AccountConfirmationRequestedEvent
from src.services.company_service import CompanyService, build_confirmation_link
from src.services.token_service import TokenService


@pytest.fixture
def service(world, event_bus) -> CompanyService:
    """Create CompanyService over the seeded in-memory backend."""
    return CompanyService(client=world.db, event_bus=event_bus, token_service=TokenService())


def registration(**overrides) -> CompanyRegisterRequest:
    payload = {
        "company_name": "Ledger & Co",
        "domain": "ledger",
        "email": "founder@ledger.com",
        "password": "founder-password",
        "name": "Fay",
        "last_name": "Founder",
    }
    payload.update(overrides)
    return CompanyRegisterRequest(**payload)


class TestRegisterCompany:
    """Tests for register_company."""

    @pytest.mark.asyncio
    async def test_creates_company_plan_and_inactive_owner(self, service, world, test_settings) -> None:
        result = await service.register_company(registration(), origin="https://portal.ledger.com")

        company = world.db.rows("companies", id=str(result.company_id))[0]
        plan = world.db.rows("custom_plans", company_id=str(result.company_id))[0]
        owner = world.db.rows("tax_users", id=str(result.user_id))[0]

        assert company["domain"] == "ledger"
        assert company["custom_plan_id"] == plan["id"]
        assert plan["user_limit"] == test_settings.default_plan_user_limit
        assert plan["is_active"] is True
        assert owner["is_owner"] is True
        assert owner["is_active"] is False
        assert owner["confirmed"] is False
        assert verify_password("founder-password", owner["password_hash"])
        assert world.db.rows("user_roles", tax_user_id=owner["id"])[0]["role_id"] == world.roles["Administrator"]["id"]

    @pytest.mark.asyncio
    async def test_emits_confirmation_link(self, service, event_bus) -> None:
        result = await service.register_company(registration(), origin="https://portal.ledger.com/")

        events = event_bus.of_type(AccountConfirmationRequestedEvent)
        assert len(events) == 1
        event = events[0]
        assert event.user_id == result.user_id
        assert event.company_name == "Ledger & Co"
        assert event.confirmation_link.startswith("https://portal.ledger.com/auth/confirm?email=founder@ledger.com&token=")

        token = event.confirmation_link.split("token=")[1]
        validation = TokenService().validate_confirmation(token)
        assert validation.is_valid
        assert validation.user_id == result.user_id

    @pytest.mark.asyncio
    async def test_individual_account_uses_full_name(self, service, event_bus) -> None:
        await service.register_company(
            registration(is_company=False, company_name=None, full_name="Fay Founder", domain="fay")
        )

        assert event_bus.of_type(AccountConfirmationRequestedEvent)[0].company_name == "Fay Founder"

    @pytest.mark.asyncio
    async def test_domain_conflict(self, service, world, event_bus) -> None:
        with pytest.raises(ConflictError) as exc_info:
            await service.register_company(registration(domain="acme"))

        assert exc_info.value.message == "Domain already registered"
        assert len(world.db.rows("companies")) == 1
        assert event_bus.published == []

    @pytest.mark.asyncio
    async def test_email_conflict(self, service) -> None:
        with pytest.raises(ConflictError) as exc_info:
            await service.register_company(registration(email="owner@acmetax.com"))

        assert exc_info.value.message == "Email already registered"

    @pytest.mark.asyncio
    async def test_failure_rolls_back_created_rows(self, service, world, event_bus) -> None:
        world.db.fail_on("user_roles", "insert")

        with pytest.raises(InfrastructureError):
            await service.register_company(registration())

        assert world.db.rows("companies", domain="ledger") == []
        assert world.db.rows("tax_users", email="founder@ledger.com") == []
        assert len(world.db.rows("custom_plans")) == 1
        assert event_bus.published == []

    def test_build_confirmation_link(self) -> None:
        assert build_confirmation_link("https://x.com/", "a@b.com", "tok") == "https://x.com/auth/confirm?email=a@b.com&token=tok"


class TestStatsAndPlan:
    """Tests for get_stats and update_plan."""

    @pytest.mark.asyncio
    async def test_stats(self, service, world) -> None:
        world.add_user("idle@acmetax.com", is_active=False)
        world.add_invitation("invitee@acmetax.com")

        stats = await service.get_stats(world.owner_ctx)

        assert stats.display_name == "Acme Tax"
        assert stats.total_users == 3
        assert stats.active_users == 2
        assert stats.owners == 1
        assert stats.pending_invitations == 1
        assert stats.available_slots == 3

    @pytest.mark.asyncio
    async def test_update_plan_requires_developer(self, service, world) -> None:
        with pytest.raises(AuthorizationError):
            await service.update_plan(world.owner_ctx, world.company_id, PlanUpdateRequest(user_limit=50))

    @pytest.mark.asyncio
    async def test_developer_updates_plan(self, service, world) -> None:
        developer = world.add_user("dev@acmetax.com", role="Developer")

        plan = await service.update_plan(world.context(developer), world.company_id, PlanUpdateRequest(user_limit=50))

        assert plan["user_limit"] == 50
        assert world.db.rows("custom_plans", id=world.plan["id"])[0]["user_limit"] == 50

    @pytest.mark.asyncio
    async def test_update_plan_of_unknown_company(self, service, world) -> None:
        developer = world.add_user("dev@acmetax.com", role="Developer")

        with pytest.raises(NotFoundError):
            await service.update_plan(world.context(developer), uuid4(), PlanUpdateRequest(is_active=False))


class TestGetCompany:
    """Tests for get_company against a mocked client."""

    @pytest.mark.asyncio
    async def test_missing_company_raises(self) -> None:
        mock_supabase = MagicMock()
        mock_response = MagicMock()
        mock_response.data = None
        mock_supabase.table.return_value.select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = (
            mock_response
        )

        with patch("src.services.company_service.get_supabase_client", return_value=mock_supabase):
            service = CompanyService(event_bus=MagicMock(), token_service=TokenService())

        with pytest.raises(NotFoundError):
            await service.get_company(UUID("770e8400-e29b-41d4-a716-446655440000"))
