"""Unit tests for SupabaseTransaction."""

from uuid import uuid4

import pytest

from src.api.middleware.error_handler import InfrastructureError, ValidationError
from src.core.transaction import SupabaseTransaction
from src.schemas.events import PasswordResetRequestedEvent


def reset_event() -> PasswordResetRequestedEvent:
    return PasswordResetRequestedEvent(user_id=uuid4(), email="a@acmetax.com", reset_link="https://x.com/r")


class TestCommit:
    @pytest.mark.asyncio
    async def test_staged_events_publish_after_commit(self, fake_db, event_bus) -> None:
        async with SupabaseTransaction(fake_db, event_bus) as tx:
            tx.insert("alpha", {"name": "a"})
            tx.stage(reset_event())
            assert event_bus.published == []
            assert len(tx.staged_events) == 1

        assert len(event_bus.published) == 1
        assert len(fake_db.rows("alpha")) == 1

    @pytest.mark.asyncio
    async def test_conditional_update_returns_matched_rows_only(self, fake_db, event_bus) -> None:
        row = fake_db.seed("invitations", status="pending")
        fake_db.seed("invitations", status="cancelled")

        async with SupabaseTransaction(fake_db, event_bus) as tx:
            updated = tx.update(
                "invitations",
                {"status": "accepted"},
                revert={"status": "pending"},
                eq={"status": "pending"},
            )

        assert [r["id"] for r in updated] == [row["id"]]
        assert fake_db.rows("invitations", id=row["id"])[0]["status"] == "accepted"


class TestRollback:
    @pytest.mark.asyncio
    async def test_api_errors_propagate_and_undo_newest_first(self, fake_db, event_bus) -> None:
        with pytest.raises(ValidationError):
            async with SupabaseTransaction(fake_db, event_bus) as tx:
                tx.insert("alpha", {"name": "a"})
                tx.insert("beta", {"name": "b"})
                tx.stage(reset_event())
                raise ValidationError("nope")

        assert fake_db.rows("alpha") == []
        assert fake_db.rows("beta") == []
        assert fake_db.calls[-2:] == [("beta", "delete"), ("alpha", "delete")]
        assert event_bus.published == []

    @pytest.mark.asyncio
    async def test_update_is_reverted(self, fake_db, event_bus) -> None:
        row = fake_db.seed("invitations", status="pending")

        with pytest.raises(ValidationError):
            async with SupabaseTransaction(fake_db, event_bus) as tx:
                tx.update("invitations", {"status": "accepted"}, revert={"status": "pending"}, eq={"id": row["id"]})
                raise ValidationError("later step failed")

        assert fake_db.rows("invitations", id=row["id"])[0]["status"] == "pending"

    @pytest.mark.asyncio
    async def test_deleted_rows_are_restored(self, fake_db, event_bus) -> None:
        kept = fake_db.seed("user_roles", tax_user_id="u1", role_id="r1")
        fake_db.seed("user_roles", tax_user_id="u2", role_id="r1")

        with pytest.raises(ValidationError):
            async with SupabaseTransaction(fake_db, event_bus) as tx:
                deleted = tx.delete("user_roles", eq={"tax_user_id": "u1"})
                assert [r["id"] for r in deleted] == [kept["id"]]
                assert fake_db.rows("user_roles", tax_user_id="u1") == []
                raise ValidationError("later step failed")

        assert fake_db.rows("user_roles", tax_user_id="u1") == [kept]
        assert len(fake_db.rows("user_roles")) == 2

    @pytest.mark.asyncio
    async def test_unexpected_errors_become_infrastructure_errors(self, fake_db, event_bus) -> None:
        fake_db.fail_on("beta", "insert")

        with pytest.raises(InfrastructureError) as exc_info:
            async with SupabaseTransaction(fake_db, event_bus) as tx:
                tx.insert("alpha", {"name": "a"})
                tx.insert("beta", {"name": "b"})

        assert exc_info.value.message == "The operation could not be completed"
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert fake_db.rows("alpha") == []

    @pytest.mark.asyncio
    async def test_failed_compensation_does_not_stop_rollback(self, fake_db, event_bus) -> None:
        fake_db.fail_on("beta", "delete")

        with pytest.raises(ValidationError):
            async with SupabaseTransaction(fake_db, event_bus) as tx:
                tx.insert("alpha", {"name": "a"})
                tx.insert("beta", {"name": "b"})
                raise ValidationError("nope")

        assert fake_db.rows("alpha") == []
        assert len(fake_db.rows("beta")) == 1

    @pytest.mark.asyncio
    async def test_rollback_is_idempotent(self, fake_db, event_bus) -> None:
        tx = SupabaseTransaction(fake_db, event_bus)
        tx.insert("alpha", {"name": "a"})

        tx.rollback()
        tx.rollback()
        await tx.commit()

        assert fake_db.calls.count(("alpha", "delete")) == 1
        assert event_bus.published == []
