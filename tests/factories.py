"""Seed data and recording doubles shared by the test suite."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from src.core.events import EventBus
from src.core.security import hash_password
from src.schemas.auth import UserContext
from src.schemas.events import DomainEvent
from tests.fakes import FakeSupabaseClient

OWNER_PASSWORD = "owner-password"
MEMBER_PASSWORD = "member-password"

# bcrypt is slow on purpose; hash the fixture passwords once
OWNER_PASSWORD_HASH = hash_password(OWNER_PASSWORD)
MEMBER_PASSWORD_HASH = hash_password(MEMBER_PASSWORD)


class RecordingEventBus(EventBus):
    """Event bus that remembers every published event."""

    def __init__(self) -> None:
        super().__init__()
        self.published: list[DomainEvent] = []

    async def publish(self, event: DomainEvent) -> None:
        self.published.append(event)
        await super().publish(event)

    def of_type(self, event_type: type[DomainEvent]) -> list[DomainEvent]:
        return [e for e in self.published if isinstance(e, event_type)]


@dataclass
class World:
    """Seeded tenant: one company with a plan, an Owner and a member."""

    db: FakeSupabaseClient
    company: dict[str, Any]
    plan: dict[str, Any]
    owner: dict[str, Any]
    member: dict[str, Any]
    roles: dict[str, dict[str, Any]]
    permissions: dict[str, dict[str, Any]]

    @property
    def company_id(self) -> UUID:
        return UUID(self.company["id"])

    def context(self, user: dict[str, Any], session_id: str = "00000000-0000-0000-0000-000000000001") -> UserContext:
        return UserContext(
            user_id=UUID(user["id"]),
            session_id=UUID(session_id),
            company_id=UUID(user["company_id"]),
            email=user["email"],
            is_owner=bool(user["is_owner"]),
        )

    @property
    def owner_ctx(self) -> UserContext:
        return self.context(self.owner)

    @property
    def member_ctx(self) -> UserContext:
        return self.context(self.member)

    def add_user(self, email: str, *, is_owner: bool = False, is_active: bool = True, role: str = "User") -> dict[str, Any]:
        user = self.db.seed(
            "tax_users",
            company_id=self.company["id"],
            email=email,
            password_hash=MEMBER_PASSWORD_HASH,
            name="Test",
            last_name="User",
            phone_number=None,
            is_owner=is_owner,
            is_active=is_active,
            confirmed=True,
        )
        self.db.seed("user_roles", tax_user_id=user["id"], role_id=self.roles[role]["id"])
        return user

    def add_invitation(
        self,
        email: str,
        *,
        status: str = "pending",
        expires_at: datetime | None = None,
        token: str = "unused-token",
        company_id: str | None = None,
    ) -> dict[str, Any]:
        return self.db.seed(
            "invitations",
            company_id=company_id or self.company["id"],
            invited_by_user_id=self.owner["id"],
            email=email,
            token=token,
            invitation_link=f"https://app.example.com/auth/invitation?token={token}",
            expires_at=(expires_at or datetime.now(timezone.utc) + timedelta(days=7)).isoformat(),
            status=status,
            role_ids=[self.roles["User"]["id"]],
        )

    def set_user_limit(self, limit: int, is_active: bool = True) -> None:
        for plan in self.db.tables["custom_plans"]:
            if plan["id"] == self.plan["id"]:
                plan["user_limit"] = limit
                plan["is_active"] = is_active

    def set_user_active(self, user: dict[str, Any], is_active: bool) -> None:
        for row in self.db.tables["tax_users"]:
            if row["id"] == user["id"]:
                row["is_active"] = is_active


def seed_world(db: FakeSupabaseClient, user_limit: int = 5) -> World:
    """Seed roles, permissions and one company with an Owner and a member."""
    roles = {
        name: db.seed("roles", name=name, description=None, category=category)
        for name, category in [
            ("Administrator", "administrator"),
            ("User", "member"),
            ("Developer", "developer"),
            ("Customer", "customer"),
            ("Accountant", "member"),
        ]
    }
    permissions = {
        code: db.seed("permissions", code=code, name=code.title(), description=None, is_granted=True)
        for code in ["invoices.read", "invoices.write", "reports.read"]
    }
    for code in ["invoices.read", "invoices.write"]:
        db.seed("role_permissions", role_id=roles["Administrator"]["id"], permission_id=permissions[code]["id"])
    db.seed("role_permissions", role_id=roles["User"]["id"], permission_id=permissions["reports.read"]["id"])

    company = db.seed(
        "companies",
        company_name="Acme Tax",
        full_name=None,
        domain="acme",
        is_company=True,
        address=None,
    )
    plan = db.seed("custom_plans", company_id=company["id"], name="Basic", user_limit=user_limit, is_active=True)
    for row in db.tables["companies"]:
        if row["id"] == company["id"]:
            row["custom_plan_id"] = plan["id"]
    company["custom_plan_id"] = plan["id"]

    owner = db.seed(
        "tax_users",
        company_id=company["id"],
        email="owner@acmetax.com",
        password_hash=OWNER_PASSWORD_HASH,
        name="Olivia",
        last_name="Owner",
        phone_number=None,
        is_owner=True,
        is_active=True,
        confirmed=True,
    )
    db.seed("user_roles", tax_user_id=owner["id"], role_id=roles["Administrator"]["id"])

    member = db.seed(
        "tax_users",
        company_id=company["id"],
        email="member@acmetax.com",
        password_hash=MEMBER_PASSWORD_HASH,
        name="Max",
        last_name="Member",
        phone_number=None,
        is_owner=False,
        is_active=True,
        confirmed=True,
    )
    db.seed("user_roles", tax_user_id=member["id"], role_id=roles["User"]["id"])

    return World(
        db=db,
        company=company,
        plan=plan,
        owner=owner,
        member=member,
        roles=roles,
        permissions=permissions,
    )


def login(client: Any, email: str, password: str) -> dict[str, Any]:
    """Log in through the API and return the envelope's data."""
    response = client.post("/api/Session/Login", json={"email": email, "password": password})
    body = response.json()
    assert body["success"] is True, body
    return body["data"]


def auth_headers(client: Any, email: str, password: str) -> dict[str, str]:
    """Bearer headers for a freshly opened session."""
    return {"Authorization": f"Bearer {login(client, email, password)['access_token']}"}
