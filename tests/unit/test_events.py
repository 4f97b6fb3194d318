"""Unit tests for the in-process event bus."""

from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from src.core.events import EventBus, get_event_bus
from src.schemas.events import PasswordResetRequestedEvent, UserLoginEvent


def reset_event() -> PasswordResetRequestedEvent:
    return PasswordResetRequestedEvent(user_id=uuid4(), email="a@acmetax.com", reset_link="https://x.com/r")


class TestEventBus:
    @pytest.mark.asyncio
    async def test_delivers_to_subscribers_of_the_type(self) -> None:
        bus = EventBus()
        reset_handler = AsyncMock()
        login_handler = AsyncMock()
        bus.subscribe(PasswordResetRequestedEvent, reset_handler)
        bus.subscribe(UserLoginEvent, login_handler)

        event = reset_event()
        await bus.publish(event)

        reset_handler.assert_awaited_once_with(event)
        login_handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_subscribe_by_name(self) -> None:
        bus = EventBus()
        handler = AsyncMock()
        bus.subscribe("PasswordResetRequestedEvent", handler)

        await bus.publish(reset_event())

        handler.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failing_handler_is_isolated(self) -> None:
        bus = EventBus()
        failing = AsyncMock(side_effect=RuntimeError("smtp down"))
        healthy = AsyncMock()
        bus.subscribe(PasswordResetRequestedEvent, failing)
        bus.subscribe(PasswordResetRequestedEvent, healthy)

        await bus.publish(reset_event())

        healthy.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unsubscribe_and_clear(self) -> None:
        bus = EventBus()
        handler = AsyncMock()
        bus.subscribe(PasswordResetRequestedEvent, handler)
        bus.unsubscribe(PasswordResetRequestedEvent, handler)
        await bus.publish(reset_event())

        bus.subscribe(PasswordResetRequestedEvent, handler)
        bus.clear()
        await bus.publish(reset_event())

        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_publish_all_keeps_order(self) -> None:
        bus = EventBus()
        seen = []

        async def record(event) -> None:
            seen.append(event.event_id)

        bus.subscribe(PasswordResetRequestedEvent, record)
        events = [reset_event(), reset_event()]
        await bus.publish_all(events)

        assert seen == [e.event_id for e in events]

    def test_event_type_is_class_name(self) -> None:
        assert reset_event().event_type == "PasswordResetRequestedEvent"

    def test_global_bus_is_singleton(self) -> None:
        with patch("src.core.events._event_bus", None):
            assert get_event_bus() is get_event_bus()
